"""Test package for the Recall Trainer.

Core modules (difficulty control, content selection, the round state machine
and the session store) are tested directly with a scripted clock. The pygame
shell is smoke-tested headlessly using SDL's dummy video/audio drivers, so no
real window opens. Run ``pytest`` from the project root.
"""

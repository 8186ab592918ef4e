from __future__ import annotations

from recall_trainer.app import run


def main() -> int:
    """Run the trainer until the window is closed (``recall-trainer`` or ``python -m recall_trainer``)."""
    return run()


if __name__ == "__main__":
    raise SystemExit(main())

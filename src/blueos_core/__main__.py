"""Allow ``python -m blueos_core``."""

from blueos_core.main import run

if __name__ == "__main__":
    run()

"""Allow ``python -m lpshield``."""
from .cli import main

if __name__ == "__main__":
    main()

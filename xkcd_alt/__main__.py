"""Allow running xkcd-alt with ``python -m xkcd_alt``."""

from .program_main import main

if __name__ == "__main__":
    main()

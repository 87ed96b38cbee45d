"""Allow ``python -m vmss_rotation``."""

from vmss_rotation.cli import main

if __name__ == "__main__":
    main()

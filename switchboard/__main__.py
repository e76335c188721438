"""Allow running the server as a module: python -m switchboard."""

from switchboard.runner import main

if __name__ == "__main__":
    main()

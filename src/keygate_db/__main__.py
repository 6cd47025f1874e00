"""Module entrypoint for ``python -m keygate_db`` CLI usage."""

from .cli import app


def main() -> None:
    app()


if __name__ == "__main__":
    main()

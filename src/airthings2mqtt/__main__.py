"""Allow ``python -m airthings2mqtt``."""

from airthings2mqtt._app import Bridge


def main() -> None:
    Bridge().cli()


if __name__ == "__main__":
    main()

import asyncio

from paws_server.service import main


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()

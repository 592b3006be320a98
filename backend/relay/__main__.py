import uvicorn

from relay.core.settings import settings


def run():
    uvicorn.run("relay.main:app", host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    run()

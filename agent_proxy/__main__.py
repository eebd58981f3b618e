import sys

import uvicorn
from loguru import logger

from agent_proxy.settings import Settings


def main() -> None:
	settings = Settings.get()
	logger.remove()
	logger.add(sys.stderr, level=settings.LOG_LEVEL.upper())
	uvicorn.run(
		app="agent_proxy:create_app",
		factory=True,
		host=settings.HOST,
		port=settings.PORT,
		reload=settings.RELOAD,
		workers=settings.WORKERS,
		use_colors=True,
	)


if __name__ == "__main__":
	main()

from tailfire.infra.db import engine
from tailfire.infra.models import Base
from tailfire.logging_config import setup_logging


def main():
    logger = setup_logging()
    Base.metadata.create_all(bind=engine)
    logger.info("Tables created")


if __name__ == "__main__":
    main()

import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///car_rental.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Settings consumed by the rental engine.  They are read once per call by
    # the settings collaborator and handed to the pricing functions.
    RENTAL_DEPOSIT_PERCENTAGE = os.environ.get("RENTAL_DEPOSIT_PERCENTAGE", "20")
    RENTAL_MIN_DAYS = int(os.environ.get("RENTAL_MIN_DAYS", "1"))
    RENTAL_MAX_DAYS = int(os.environ.get("RENTAL_MAX_DAYS", "90"))
    RENTAL_NUMBER_PREFIX = os.environ.get("RENTAL_NUMBER_PREFIX", "RNT")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    LOG_LEVEL = "WARNING"

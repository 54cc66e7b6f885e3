"""Static metadata describing QuizAdmin."""

APP_NAME = "QuizAdmin"
APP_VERSION = "0.1"

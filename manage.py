"""Management script for database and reconciliation tasks"""

from dotenv import load_dotenv
from flask.cli import FlaskGroup

load_dotenv()

from zenith_billing import create_app  # noqa: E402

cli = FlaskGroup(create_app=create_app)


if __name__ == "__main__":
    cli()

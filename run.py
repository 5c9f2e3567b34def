import os
import sys

import click
from dotenv import load_dotenv

load_dotenv()

project_root = os.path.abspath(os.path.dirname(__file__))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

import alembic.command
import alembic.config
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from campus_forum import create_app, db, migrate
from campus_forum.models.db_models import Topic, User

app = create_app(os.getenv("FLASK_CONFIG") or "default")

DEFAULT_TOPICS = [
    {"name": "Campus Life", "description": "Everyday life around campus."},
    {"name": "Study", "description": "Courses, exams and study groups."},
    {"name": "Clubs & Events", "description": "Societies, meetups and events."},
    {"name": "Housing", "description": "Dorms, flats and roommates."},
    {"name": "Jobs & Internships", "description": "Part-time work and careers."},
    {"name": "Marketplace", "description": "Buy, sell and swap."},
    {"name": "Lost & Found", "description": "Things lost and found on campus."},
]


@app.cli.command("seed-topics")
def seed_topics_cli():
    """CLI command to seed the default topics."""
    added = 0
    for topic_data in DEFAULT_TOPICS:
        if Topic.query.filter_by(name=topic_data["name"]).first():
            continue
        db.session.add(Topic(**topic_data))
        added += 1
        click.echo(f"Adding topic: {topic_data['name']}")
    if added:
        try:
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            click.echo(f"Error committing topics: {e}")
            return
    click.echo(f"Topic seeding complete ({added} added).")


@app.cli.command("create-admin")
@click.argument("email")
@click.argument("password")
def create_admin_cli(email, password):
    """Creates an admin account, or promotes the existing account with EMAIL."""
    email = email.strip().lower()
    user = User.query.filter_by(email=email).first()
    if user is None:
        if len(password) < 6:
            raise click.BadParameter("must be at least 6 characters", param_hint="PASSWORD")
        user = User(name=email.split("@", 1)[0], email=email)
        user.set_password(password)
        db.session.add(user)
    user.role = "admin"
    user.banned = False
    db.session.commit()
    app.logger.info(f"Granted admin role to user {user.id}")
    click.echo(f"{email} is now an admin.")


def apply_migrations(app_instance):
    """Applies Alembic migrations at startup."""
    with app_instance.app_context():
        try:
            app_instance.logger.info("Configuring Alembic for database migrations...")
            alembic_cfg = alembic.config.Config(
                os.path.join(project_root, "migrations", "alembic.ini")
            )
            alembic_cfg.set_main_option("script_location", migrate.directory)
            alembic_cfg.set_main_option(
                "sqlalchemy.url", app_instance.config["SQLALCHEMY_DATABASE_URI"]
            )

            app_instance.logger.info("Attempting to apply database migrations...")
            alembic.command.upgrade(alembic_cfg, "head")
            app_instance.logger.info(
                "Database migrations applied successfully (or already up to date)."
            )
        except Exception as e:
            app_instance.logger.error(f"Error applying database migrations: {e}")


def check_post_table_exists(app_instance):
    """Checks for the existence of the 'post' table after migrations."""
    with app_instance.app_context():
        with db.engine.connect() as connection:
            try:
                connection.execute(text("SELECT 1 FROM post LIMIT 1"))
                app_instance.logger.info(
                    "Table 'post' confirmed to exist in the database."
                )
            except OperationalError as e:
                app_instance.logger.critical(
                    f"Table 'post' does not exist after migrations: {e}"
                )
                raise RuntimeError(
                    "Application cannot start: 'post' table is missing after migrations."
                )


if __name__ == "__main__":
    if not app.config.get("TESTING", False):
        if not app.debug or os.environ.get("WERKZEUG_RUN_MAIN") == "true":
            apply_migrations(app)
            check_post_table_exists(app)

    app_port = int(os.environ.get("PORT", 5000))
    app.run(host="0.0.0.0", port=app_port, debug=app.debug)

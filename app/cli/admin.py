import asyncio
import click
from app.core.database import SessionLocal
from app.core.errors import ExperimentServiceError
from app.models.user import User, Tier
from app.services.experiment_service import ExperimentService
from app.services.reminder_service import ReminderService
from app.services.user_service import UserService
from datetime import datetime
import logging

logger = logging.getLogger(__name__)


def _find_user(db, email, user_id):
    if user_id:
        return db.query(User).filter(User.id == user_id).first()
    return db.query(User).filter(User.email == email).first()


@click.group()
def cli():
    """Tiny Experiments CLI commands"""
    pass


@cli.command()
@click.option('--email', required=False, help='User email')
@click.option('--id', 'user_id', required=False, help='User id (Firebase UID)')
@click.option('--set', 'new_tier', type=click.Choice([t.value for t in Tier]), required=False, help='Set the user tier')
def tier(email, user_id, new_tier):
    """Show or change a user's tier (free / paid)"""
    db = SessionLocal()
    try:
        if not email and not user_id:
            click.echo("❌ Please provide --email or --id for this operation", err=True)
            return

        user = _find_user(db, email, user_id)
        if not user:
            click.echo(f"❌ User not found: {user_id or email}", err=True)
            return

        display_ident = user.email or user.id
        if new_tier is None:
            click.echo(f"User {display_ident} is on the {user.tier} tier")
        elif user.tier == new_tier:
            click.echo(f"✓ User {display_ident} is already on the {new_tier} tier")
        else:
            UserService().set_tier(db, user, new_tier)
            click.echo(f"✓ Set tier {new_tier} for {display_ident}")
    except Exception as e:
        db.rollback()
        logger.error(f"CLI error: {e}")
        click.echo(f"❌ Error: {e}", err=True)
    finally:
        db.close()


@cli.command()
@click.option('--hour', type=click.IntRange(0, 23), required=False, help='Reminder hour to evaluate. Defaults to the current UTC hour')
@click.option('--dry-run', 'dry_run', is_flag=True, help='List due reminders without sending them')
def reminders(hour, dry_run):
    """Run one reminder tick (schedule hourly)"""
    db = SessionLocal()
    try:
        service = ReminderService()
        if dry_run:
            tick_hour = service.clock.now().hour if hour is None else hour
            due = list(service.due_reminders(db, tick_hour))
            if not due:
                click.echo(f"No reminders due at {tick_hour:02d}:00")
                return
            click.echo(f"🔍 Dry run: {len(due)} users due at {tick_hour:02d}:00")
            for user, experiments in due:
                names = ", ".join(experiment.name for experiment in experiments)
                click.echo(f"  - {user.email or user.id}: {names}")
            return

        # Imported here so a dry run works without Firebase credentials
        from app.core.firebase import init_firebase
        from app.services.fcm_service import FCMService

        init_firebase()
        summary = asyncio.run(service.run_tick(db, FCMService(), current_hour=hour))
        click.echo(f"✓ Reminders: {summary['users_due']} due, {summary['sent']} sent, {summary['skipped']} skipped")
    except ExperimentServiceError as e:
        db.rollback()
        logger.error(f"CLI error: {e}")
        click.echo(f"❌ Error ({e.code}): {e}", err=True)
        raise SystemExit(1)
    finally:
        db.close()


@cli.command('complete-expired')
@click.option('--date', 'scan_date', required=False, help='Treat this date (YYYY-MM-DD) as today. Defaults to today')
def complete_expired(scan_date):
    """Complete every active experiment whose window has ended (schedule daily or hourly)"""
    target_date = None
    if scan_date:
        try:
            target_date = datetime.strptime(scan_date, "%Y-%m-%d").date()
        except ValueError:
            click.echo("❌ Invalid date format. Use YYYY-MM-DD", err=True)
            return

    db = SessionLocal()
    try:
        service = ExperimentService()
        target_date = target_date or service.clock.today()
        completed = service.auto_complete_expired(db, today=target_date)
        click.echo(f"✓ Completed {completed} experiments ended by {target_date.isoformat()}")
    except ExperimentServiceError as e:
        db.rollback()
        logger.error(f"CLI error: {e}")
        click.echo(f"❌ Error ({e.code}): {e}", err=True)
        raise SystemExit(1)
    finally:
        db.close()


if __name__ == '__main__':
    cli()

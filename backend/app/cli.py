"""CLI commands for Flask application."""

import click
from flask.cli import with_appcontext


@click.group()
def rewards():
    """Reward catalog commands."""
    pass


@rewards.command()
@with_appcontext
def seed():
    """Insert the default rewards that are missing from the catalog."""
    from app.services.reward_engine import seed_default_rewards

    created = seed_default_rewards()
    click.echo(f"Done! {created} rewards created")


@rewards.command("list")
@click.option("--all", "show_all", is_flag=True, help="Include unavailable rewards")
@with_appcontext
def list_rewards(show_all):
    """Show the reward catalog."""
    from app.models import Reward
    from app.services.reward_engine import RewardEngine

    if show_all:
        catalog = Reward.query.order_by(Reward.id).all()
    else:
        catalog = RewardEngine().get_active_rewards()

    if not catalog:
        click.echo("No rewards found")
        return

    for reward in catalog:
        remaining = reward.remaining_quantity()
        click.echo(
            f"  {reward.id}: {reward.value} [{reward.status}] "
            f"trigger={reward.trigger_type} "
            f"remaining={'unlimited' if remaining is None else remaining}"
        )

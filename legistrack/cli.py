"""CLI for LegisTrack."""

import click
import structlog

# Configure logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def _echo_result(result):
    """Print a SyncResult and any per-item errors."""
    click.echo(result.message)
    for error in result.errors[:10]:
        click.echo(f"  ! {error}")
    if len(result.errors) > 10:
        click.echo(f"  ...and {len(result.errors) - 10} more errors")


@click.group()
def cli():
    """LegisTrack - Track legislation with AI analysis."""
    pass


@cli.command()
def init_db():
    """Initialize the database."""
    from legistrack.models.database import init_db as _init_db
    _init_db()
    click.echo("Database initialized.")


@cli.command()
@click.option("--congress", "-c", type=int, help="Congress number. Defaults to the latest bills.")
@click.option("--limit", "-n", default=50, show_default=True, help="Number of bills to fetch.")
@click.option("--offset", default=0, help="Offset into the bill list.")
@click.option("--bill", "bill_ids", multiple=True, help="Sync specific bills by id (e.g. 118-hr-1234).")
def sync_bills(congress, limit, offset, bill_ids):
    """Fetch bills from Congress.gov and store them."""
    from legistrack.etl.bills import BillFetcher

    with BillFetcher() as fetcher:
        if bill_ids:
            click.echo(f"Syncing {len(bill_ids)} bills...")
            result = fetcher.sync_multiple_bills(list(bill_ids))
        else:
            click.echo(f"Syncing up to {limit} bills{f' from congress {congress}' if congress else ''}...")
            result = fetcher.sync_bills(congress=congress, limit=limit, offset=offset)
    _echo_result(result)


@cli.command()
@click.option("--limit", "-n", default=20, show_default=True, help="Maximum bills to update.")
def update_summaries(limit):
    """Fill in missing bill summaries from Congress.gov."""
    from legistrack.services.summaries import BillSummaryService

    click.echo(f"Updating summaries for up to {limit} bills...")
    _echo_result(BillSummaryService().update_missing_summaries(limit))


@cli.command()
@click.option("--limit", "-n", default=20, show_default=True, help="Maximum bills to update.")
def update_full_text(limit):
    """Fetch full bill text for bills that do not have it."""
    from legistrack.etl.full_text import FullTextFetcher

    click.echo(f"Fetching full text for up to {limit} bills...")
    with FullTextFetcher() as fetcher:
        _echo_result(fetcher.update_missing_full_text(limit))


@cli.command()
@click.argument("bill_id")
@click.option("--comprehensive", is_flag=True, help="Generate the comprehensive analysis instead.")
def generate_analysis(bill_id, comprehensive):
    """Generate an AI analysis for BILL_ID."""
    from legistrack.exceptions import LegisTrackError
    from legistrack.services.bills import BillService
    from legistrack.summarizers.llm import get_llm_service

    llm = get_llm_service()
    if not llm:
        click.echo("Error: Anthropic API key not configured in .env")
        return

    bill = BillService().get_bill(bill_id)
    if bill is None:
        click.echo(f"Bill not found: {bill_id}")
        return

    try:
        if comprehensive:
            analysis = llm.generate_comprehensive_analysis(bill)
            click.echo(f"Comprehensive analysis saved for {bill_id}.")
            click.echo(analysis.get("executiveSummary", ""))
        else:
            analysis = llm.generate_bill_analysis(bill)
            click.echo(f"Analysis saved for {bill_id}.")
            click.echo(analysis.get("summary", ""))
    except LegisTrackError as e:
        click.echo(f"Error: {e}")


@cli.command()
@click.option("--limit", "-n", default=10, show_default=True, help="Maximum overviews to generate.")
@click.option("--bill", "bill_ids", multiple=True, help="Generate for specific bills.")
@click.option("--from-analyses", is_flag=True, help="Use bills that already have a comprehensive analysis.")
def generate_podcasts(limit, bill_ids, from_analyses):
    """Generate podcast overview scripts."""
    from legistrack.services.podcasts import PodcastOverviewService

    service = PodcastOverviewService()
    if bill_ids:
        result = service.update_podcast_overviews_for_bills(list(bill_ids))
    elif from_analyses:
        result = service.generate_from_generated_content(limit)
    else:
        result = service.generate_missing_podcast_overviews(limit)
    _echo_result(result)


@cli.command()
@click.option("--limit", "-n", default=50, show_default=True, help="Bills per step.")
@click.option("--bill", "bill_ids", multiple=True, help="Update specific bills only.")
@click.option("--notify", is_flag=True, help="Send the result to the Discord webhook.")
def batch_update(limit, bill_ids, notify):
    """Run the full refresh: bills, summaries, full text, policy areas, podcasts."""
    from legistrack.notifications import get_notifier
    from legistrack.services.batch_update import BillBatchUpdateService

    service = BillBatchUpdateService()
    notifier = get_notifier()
    try:
        if bill_ids:
            result = service.update_specific_bills(list(bill_ids))
        else:
            result = service.update_all_bills(limit)
    except Exception as e:
        if notify:
            notifier.notify_error("batch-update", str(e))
        raise

    click.echo(result["message"])
    for key, value in (result.get("details") or {}).items():
        click.echo(f"  {key}: {value}")
    if notify:
        notifier.notify_batch_update(result)


@cli.command()
@click.option("--force", is_flag=True, help="Sync even if the table was refreshed recently.")
def sync_representatives(force):
    """Sync current members of Congress."""
    from legistrack.services.representatives import RepresentativeService

    _echo_result(RepresentativeService().sync_representatives_from_congress(force=force))


@cli.command()
@click.option("--limit", "-n", default=50, show_default=True, help="Maximum bills to tag.")
@click.option("--bill", "bill_ids", multiple=True, help="Tag specific bills only.")
@click.option("--retag", is_flag=True, help="Include bills that already have tags.")
def tag_bills(limit, bill_ids, retag):
    """Assign subject tags to bills."""
    from legistrack.exceptions import LegisTrackError
    from legistrack.services.tagging import TaggingService

    service = TaggingService()
    if bill_ids:
        for bill_id in bill_ids:
            try:
                tags = service.tag_bill(bill_id)
            except LegisTrackError as e:
                click.echo(f"{bill_id}: {e}")
                continue
            click.echo(f"{bill_id}: " + (", ".join(f"{t['name']} ({t['confidence_score']})" for t in tags) or "no tags"))
        return
    _echo_result(service.process_all_bills(limit=limit, skip_tagged=not retag))


@cli.command()
@click.argument("bill_id")
def bill_votes(bill_id):
    """Show roll call votes on BILL_ID."""
    from legistrack.exceptions import LegisTrackError
    from legistrack.services.voting import VotingService

    try:
        data = VotingService().get_bill_votes(bill_id)
    except LegisTrackError as e:
        click.echo(f"Error: {e}")
        return

    if not data["votes"]:
        click.echo(f"No votes found for {bill_id}.")
        return
    for vote in data["votes"]:
        click.echo(
            f"{(vote['created'] or '')[:10]}  {vote['chamber']:<7} {vote['result']:<10} "
            f"{vote['total_plus']}-{vote['total_minus']}  {vote['question']}"
        )


@cli.command()
@click.argument("bill_id")
def generate_audio(bill_id):
    """Generate podcast audio for BILL_ID from its overview."""
    from legistrack.exceptions import LegisTrackError
    from legistrack.media.speech import SpeechService
    from legistrack.services.bills import BillService

    bill = BillService().get_bill(bill_id)
    if bill is None:
        click.echo(f"Bill not found: {bill_id}")
        return

    with SpeechService() as speech:
        try:
            audio = speech.generate_bill_podcast_audio(bill)
        except LegisTrackError as e:
            click.echo(f"Error: {e}")
            return
    click.echo(f"Stored audio {audio['id']} ({audio['duration']}s).")


@cli.command()
@click.argument("video_id")
@click.option("--wait", is_flag=True, help="Poll until the video is finished.")
def video_status(video_id, wait):
    """Show the status of a generated video."""
    from legistrack.media.video import VideoService, video_url

    with VideoService() as video:
        data = video.wait_for_video(video_id) if wait else video.get_video_status(video_id)
    click.echo(f"Status: {data.get('status')}")
    url = video_url(data)
    if url:
        click.echo(f"URL: {url}")


@cli.command()
def show_stats():
    """Show database statistics."""
    from legistrack.services.analytics import AnalyticsService

    stats = AnalyticsService().get_system_stats()
    click.echo("Database Statistics:")
    for key, value in stats.items():
        click.echo(f"  {key.replace('_', ' ').title() + ':':<22}{value}")


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True)
@click.option("--reload", is_flag=True, help="Reload on code changes.")
def serve(host, port, reload):
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run("legistrack.api:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    cli()

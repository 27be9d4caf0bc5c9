"""
Run the TicketDesk API with uvicorn.

Host, port and log level default to the API_HOST, API_PORT and LOG_LEVEL
settings (.env or environment).

Usage:
    python run.py
    python run.py --reload    # Development mode with auto-reload
    python run.py --port 8080 # Custom port
"""
import argparse
import uvicorn

from ticketdesk.config.settings import settings


def main():
    parser = argparse.ArgumentParser(description="Run the TicketDesk helpdesk API server")
    parser.add_argument(
        "--host",
        type=str,
        default=settings.api_host,
        help=f"Host to bind to (default: {settings.api_host})"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.api_port,
        help=f"Port to bind to (default: {settings.api_port})"
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development"
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Number of worker processes (default: 1, ignored if --reload is set)"
    )

    args = parser.parse_args()
    workers = 1 if args.reload else args.workers

    print(f"Starting TicketDesk API server ({settings.environment})...")
    print(f"  Listening: http://{args.host}:{args.port}/api/v1")
    print(f"  Database: {settings.mongo_db}")
    print(f"  Reload: {args.reload}")
    print(f"  Workers: {workers}")
    print(f"  Emails: {'enabled' if settings.emails_enabled else 'disabled (outbox only)'}")
    if settings.scheduler_enabled:
        print(f"  Outbox scheduler: every {settings.scheduler_interval_seconds}s")
        if workers > 1:
            # Each worker runs its own scheduler; per-notification locks keep sends single
            print(f"  Note: {workers} schedulers will share the outbox")
    else:
        print("  Outbox scheduler: disabled")
    print()

    uvicorn.run(
        "ticketdesk.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=workers,
        log_level=settings.log_level.lower()
    )


if __name__ == "__main__":
    main()

import argparse
import json
import logging
import sys

from prayerboard.core.app import PrayerBoardApp


def setup_basic_logging():
    """Setup basic stdout logging before config is loaded"""
    root_logger = logging.getLogger()
    if not root_logger.handlers:  # Only add handler if none exists
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
        ))
        root_logger.addHandler(handler)
        root_logger.setLevel(logging.DEBUG)  # Set initial level to DEBUG
        logging.debug("Basic logging initialized")


def cmd_serve(args) -> int:
    from prayerboard.api.server import run_api_server

    app = PrayerBoardApp(config_path=args.config, watch_config=True)
    run_api_server(app, host=args.host, port=args.port)
    return 0


def cmd_status(args) -> int:
    from prayerboard.core.clock import now_in
    from prayerboard.plugins.prayer.display import render_status
    from prayerboard.plugins.prayer.evaluator import evaluate

    app = PrayerBoardApp(config_path=args.config)
    now = now_in(app.tz)
    timetable = app.timetable_source.load()
    today = timetable.today(now, app.tz)
    result = evaluate(today, now, app.tz, tomorrow=timetable.tomorrow(now, app.tz))
    print(render_status(today, result, now, app.tz))
    return 0


def cmd_watch(args) -> int:
    from prayerboard.plugins.prayer.client import build_alert_trigger, clock_for_app
    from prayerboard.plugins.prayer.display import render_status

    app = PrayerBoardApp(config_path=args.config, watch_config=True)
    trigger = build_alert_trigger(app.config)

    def render(day, result, now):
        if trigger.banner.visible:
            return
        sys.stdout.write("\033[H\033[J" + render_status(day, result, now, app.tz))
        sys.stdout.write(f"\n\nAlerts: {trigger.mode.value}   [a]udio [s]ilent [o]ff  [p] play  [q] quit\n")
        sys.stdout.flush()

    trigger.reconcile_subscription()
    clock = clock_for_app(app, trigger=trigger, render=render)
    clock.start()
    try:
        for line in sys.stdin:
            command = line.strip().lower()
            if command == "q":
                break
            if command == "":
                trigger.dismiss()
            elif command == "p":
                trigger.replay()
            elif command in ("a", "s", "o"):
                trigger.set_mode({"a": "audio", "s": "silent", "o": "off"}[command])
    except KeyboardInterrupt:
        pass
    finally:
        clock.stop()
        trigger.dismiss()
        app.shutdown()
    return 0


def cmd_dispatch(args) -> int:
    """One minute-matcher cycle, for running from the system cron instead of HTTP."""
    from prayerboard.plugins.push.dispatcher import run_minute_job

    app = PrayerBoardApp(config_path=args.config)
    report = run_minute_job(
        app.timetable_source,
        app.registry,
        app.get_sender(),
        tz=app.tz,
        batch_size=app.config.get("push.batch_size", 1000),
        max_workers=app.config.get("push.max_workers", 32),
    )
    print(json.dumps(report.to_dict()))
    return 0 if report.ok else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Prayer Board')
    parser.add_argument('--config',
                        help='Path to config file (default: ./config.yaml)')
    sub = parser.add_subparsers(dest='command')

    serve = sub.add_parser('serve', help='Run the HTTP API (subscriptions, push, minute trigger)')
    serve.add_argument('--host')
    serve.add_argument('--port', type=int)
    serve.set_defaults(func=cmd_serve)

    sub.add_parser('watch', help='Live countdown with adhan alerts').set_defaults(func=cmd_watch)
    sub.add_parser('status', help='Print the current prayer state once').set_defaults(func=cmd_status)
    sub.add_parser('dispatch', help='Run one minute-matcher cycle').set_defaults(func=cmd_dispatch)
    return parser


def main(argv=None) -> int:
    # Setup basic logging
    setup_basic_logging()

    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, 'func', None):
        parser.print_help()
        return 2
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())

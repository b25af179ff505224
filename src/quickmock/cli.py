"""
QuickMock CLI

Command-line interface for serving mock APIs.

Commands:
    serve       - Serve a single mock API from a route file
    dashboard   - Run the management API for many mock servers
    init        - Write an example route file

Examples:
    # Serve routes.json on port 3001, reloading on every save
    quickmock serve routes.json --port 3001 --watch

    # Forward anything unmocked to a real backend
    quickmock serve routes.yaml --proxy http://localhost:8000

    # Management API backed by .quickmock/servers/*.json
    quickmock dashboard --port 4000
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict

import uvicorn

from .common import RoutesFileLoader, watch_file
from .mock import (
    FileConfigStore,
    InMemoryConfigStore,
    InstanceManager,
    MockServer,
    MockServerConfig,
    PortInUseError,
    create_management_app,
)

logger = logging.getLogger("quickmock.cli")

LOG_LEVELS = ['debug', 'info', 'warning', 'error']

EXAMPLE_ROUTES: Dict[str, Any] = {
    'resources': {
        'users': {
            'basePath': '/api/users',
            'seed': {
                'id': '{{faker.id}}',
                'name': '{{faker.name}}',
                'email': '{{faker.email}}',
                'role': 'user',
                'avatar': '{{faker.avatar}}',
                'createdAt': '{{faker.date}}',
            },
            'count': 5,
        },
        'posts': {
            'basePath': '/api/posts',
            'seed': {
                'id': '{{faker.id}}',
                'title': '{{faker.title}}',
                'body': '{{faker.paragraph}}',
                'author': '{{faker.name}}',
                'publishedAt': '{{faker.date}}',
            },
            'count': 3,
            'delay': 200,
        },
    },
    'routes': [
        {
            'method': 'GET',
            'path': '/api/flaky',
            'status': 200,
            'error': 0.3,
            'errorStatus': 503,
            'response': {'data': 'This endpoint fails 30% of the time'},
        },
        {
            'method': 'GET',
            'path': '/api/health',
            'status': 200,
            'response': {
                'status': 'ok',
                'uptime': '{{faker.number}}',
                'timestamp': '{{faker.date}}',
            },
        },
        {
            'method': 'POST',
            'path': '/api/login',
            'rules': [
                {'when': {'body.password': 'wrong'}, 'status': 401, 'response': {'error': 'Invalid credentials'}},
                {'status': 200, 'response': {'token': '{{faker.id}}', 'user': '{{body.username}}'}},
            ],
        },
        {
            'method': 'GET',
            'path': '/api/jobs/:id',
            'sequence': [
                {'response': {'id': '{{params.id}}', 'state': 'queued'}},
                {'response': {'id': '{{params.id}}', 'state': 'running'}},
                {'response': {'id': '{{params.id}}', 'state': 'done'}},
            ],
        },
    ],
}


def _setup_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s %(levelname)-7s %(name)s: %(message)s',
        datefmt='%H:%M:%S'
    )


def _server_settings(args) -> Dict[str, Any]:
    """Server fields taken from the command line, in route-file form."""
    settings: Dict[str, Any] = {
        'name': Path(args.routes_file).stem,
        'host': args.host,
        'port': args.port,
        'cors': not args.no_cors,
        'delay': args.delay,
        'logLevel': args.log_level,
    }
    if args.proxy:
        settings['proxyTarget'] = args.proxy
    return settings


def _print_banner(server: MockServer):
    base = f"http://{server.config.host}:{server.port}"

    print(f"🎭 QuickMock")
    print(f"   Serving: {base}")
    if server.config.proxy_target:
        print(f"   Proxy: unmatched requests go to {server.config.proxy_target}")
    print()

    if server.routes:
        print(f"📍 Routes ({len(server.routes)}):")
        for index, route in enumerate(server.routes):
            print(f"   [{index}] {route.method:<6} {route.path}")
    if server.resources:
        print(f"📦 Resources ({len(server.resources)}):")
        for name, resource in server.resources.items():
            count = len(server.get_store().collection(name))
            print(f"   {name:<12} {resource.base_path} ({count} items)")

    print()
    print(f"   POST {base}/__reset to re-seed all collections")
    print()


async def _run_serve(args, config: MockServerConfig):
    manager = InstanceManager(
        InMemoryConfigStore(),
        faker_locale=args.faker_locale,
        faker_seed=args.faker_seed
    )
    manager.create(config)
    server = await manager.start(config.id)
    _print_banner(server)

    watcher = None
    if args.watch:
        async def reload_routes():
            try:
                data = RoutesFileLoader.load_from_file(args.routes_file)
                updated = MockServerConfig.from_routes_file(data, id=config.id, **_server_settings(args))
            except (OSError, ValueError) as e:
                # ConfigError is a ValueError; the previous routes stay live
                logger.error(f"Reload of {args.routes_file} failed, keeping previous routes: {e}")
                return
            manager.reload(config.id, updated)
            print(f"🔄 Reloaded {args.routes_file} ({len(updated.routes)} routes, {len(updated.resources)} resources)")

        watcher = watch_file(args.routes_file, reload_routes)
        print(f"👀 Watching {args.routes_file} for changes")

    try:
        await asyncio.Event().wait()
    finally:
        if watcher is not None:
            watcher.cancel()
        await manager.stop_all()


def cmd_serve(args):
    """
    Serve a single mock API from a route file.

    Args:
        args: Parsed command-line arguments
    """
    _setup_logging(args.log_level)

    try:
        data = RoutesFileLoader.load_from_file(args.routes_file)
        config = MockServerConfig.from_routes_file(data, **_server_settings(args))
    except (OSError, ValueError) as e:
        print(f"❌ Failed to load routes: {e}")
        sys.exit(1)

    try:
        asyncio.run(_run_serve(args, config))
    except PortInUseError as e:
        print(f"❌ {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\n\n👋 Mock server stopped")


def cmd_dashboard(args):
    """
    Run the management API.

    Args:
        args: Parsed command-line arguments
    """
    _setup_logging(args.log_level)

    store = FileConfigStore(args.data_dir) if args.data_dir else FileConfigStore()
    manager = InstanceManager(store, faker_locale=args.faker_locale, faker_seed=args.faker_seed)
    app = create_management_app(manager)

    print(f"🎛️  QuickMock management API")
    print(f"   API: http://{args.host}:{args.port}/__api/servers")
    print(f"   Data: {store.servers_dir}")
    print()

    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level)


def cmd_init(args):
    """
    Write an example route file.

    Args:
        args: Parsed command-line arguments
    """
    path = Path(args.path)
    if path.exists():
        print(f"❌ {path} already exists; not overwriting")
        sys.exit(1)

    with open(path, 'w', encoding='utf-8') as f:
        json.dump(EXAMPLE_ROUTES, f, indent=2)
        f.write('\n')

    print(f"✅ Created {path.resolve()}")
    print(f"   Start it with: quickmock serve {path}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='quickmock',
        description="QuickMock - instant mock HTTP APIs with templating, CRUD resources and fault injection",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create an example route file and serve it
  %(prog)s init routes.json
  %(prog)s serve routes.json --watch

  # Slow everything down and pass unmatched calls to a real API
  %(prog)s serve routes.json --delay 300 --proxy http://localhost:8000

  # Run the management API
  %(prog)s dashboard --port 4000
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # --- SERVE command ---
    serve_parser = subparsers.add_parser('serve', help='Serve a mock API from a route file')
    serve_parser.add_argument('routes_file', help='Route file (.json, .yaml or .yml)')
    serve_parser.add_argument('--host', default='127.0.0.1', help='Host to bind (default: 127.0.0.1)')
    serve_parser.add_argument('-p', '--port', type=int, default=3001, help='Port to bind (default: 3001)')
    serve_parser.add_argument('--delay', type=int, default=0, help='Default response delay in ms (default: 0)')
    serve_parser.add_argument('--no-cors', action='store_true', help='Disable CORS headers')
    serve_parser.add_argument('--watch', action='store_true', help='Reload routes when the file changes')
    serve_parser.add_argument('--proxy', help='Forward unmatched requests to this base URL')
    serve_parser.add_argument('--faker-locale', default='en_US', help='Faker locale (default: en_US)')
    serve_parser.add_argument('--faker-seed', type=int, help='Faker seed for reproducible data')
    serve_parser.add_argument('--log-level', default='info', choices=LOG_LEVELS,
                              help='Log level (default: info)')

    # --- DASHBOARD command ---
    dashboard_parser = subparsers.add_parser('dashboard', help='Run the management API')
    dashboard_parser.add_argument('--host', default='127.0.0.1', help='Host to bind (default: 127.0.0.1)')
    dashboard_parser.add_argument('-p', '--port', type=int, default=3000, help='Port to bind (default: 3000)')
    dashboard_parser.add_argument('--data-dir', help='Config directory (default: $QUICKMOCK_DATA_DIR or .quickmock)')
    dashboard_parser.add_argument('--faker-locale', default='en_US', help='Faker locale (default: en_US)')
    dashboard_parser.add_argument('--faker-seed', type=int, help='Faker seed for reproducible data')
    dashboard_parser.add_argument('--log-level', default='info', choices=LOG_LEVELS,
                                  help='Log level (default: info)')

    # --- INIT command ---
    init_parser = subparsers.add_parser('init', help='Write an example route file')
    init_parser.add_argument('path', nargs='?', default='routes.json', help='Where to write it (default: routes.json)')

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == 'serve':
        cmd_serve(args)
    elif args.command == 'dashboard':
        cmd_dashboard(args)
    elif args.command == 'init':
        cmd_init(args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == '__main__':
    main()

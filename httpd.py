import argparse
import signal

from postpage.config import Config, PACKAGE_DIR
from postpage.server import ThreadedHTTPServer as Server


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Serve index.html on GET / and print POST bodies")
    parser.add_argument("--host", "-H", type=str, default="0.0.0.0", help="host to listen on")
    parser.add_argument("--port", "-p", type=int, default=3000, help="port to listen on")
    parser.add_argument("--root", "-r", type=str, default=PACKAGE_DIR, help="directory holding index.html")
    parser.add_argument("--debug", "-D", action="store_true", help="print connection traces")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    config = Config(host=args.host, port=args.port, root=args.root, debug=args.debug)
    if config.debug:
        print(f"Starting server on {args.host}:{args.port}, page '{config.index_path}'.")
    server = Server(config)

    def _shutdown(signum, frame):
        server.stop()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    server.run()

if __name__ == "__main__":
    main()

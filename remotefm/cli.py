import argparse
import json
import sys

from .api.actions import FileManagerApi, FileStream
from .api.http_api import make_server
from .common.config import read_config
from .common.errors import FileManagerError
from .common.logging import setup_logger
from .storage.storage import Storage


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="remotefm: FTP server as a browsable virtual filesystem")
    p.add_argument("--config", default="remotefm.json", help="JSON config file")
    p.add_argument("--out", default="", help="directory for logs/ (console only when empty)")
    p.add_argument("--verbose", action="store_true")
    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("serve", help="run the HTTP connector")
    s.add_argument("--addr", default="127.0.0.1")
    s.add_argument("--port", type=int, default=8081)

    a = sub.add_parser("action", help="run one action and print the JSON result")
    a.add_argument("mode", help="initiate|getinfo|readfolder|seekfolder|rename|copy|move|delete|addfolder|download")
    a.add_argument("params", nargs="*", help="key=value pairs, e.g. path=/docs")
    a.add_argument("--output", help="file to write for download/readfile/getimage (stdout when omitted)")
    return p.parse_args(argv)


def _parse_params(tokens):
    out = {}
    for tok in tokens:
        if "=" not in tok:
            raise ValueError(f"parameter needs key=value => {tok}")
        k, v = tok.split("=", 1)
        out[k.strip()] = v
    return out


def _run_action(args, cfg, logger) -> int:
    try:
        params = _parse_params(args.params)
    except ValueError as e:
        logger.error(f"[cli] {e}")
        return 2
    with Storage(cfg, logger=logger) as storage:
        api = FileManagerApi(storage, logger=logger)
        try:
            result = api.dispatch(args.mode, params)
            if isinstance(result, FileStream):
                if args.output:
                    with open(args.output, "wb") as f:
                        result.write_to(f)
                    logger.info(f"[cli] wrote {result.name} -> {args.output}")
                else:
                    result.write_to(sys.stdout.buffer)
                return 0
        except FileManagerError as e:
            print(json.dumps({"errors": [e.to_json_api()]}, ensure_ascii=False, indent=2))
            return 1
    print(json.dumps({"data": result}, ensure_ascii=False, indent=2))
    return 0


def main(argv=None):
    args = parse_args(argv)
    logger = setup_logger("remotefm", args.out, verbose=args.verbose)
    try:
        cfg = read_config(args.config)
    except (OSError, ValueError) as e:
        logger.error(f"[config] failed to read {args.config}: {e}")
        sys.exit(2)

    if args.command == "action":
        sys.exit(_run_action(args, cfg, logger))

    srv = make_server(cfg, logger, addr=args.addr, port=args.port)
    try:
        srv.serve_forever()
    except KeyboardInterrupt:
        logger.info("[http] stopping")
    finally:
        srv.server_close()


if __name__ == "__main__":
    main()

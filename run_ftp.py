import argparse
import os

from pyftpdlib.authorizers import DummyAuthorizer
from pyftpdlib.handlers import FTPHandler
from pyftpdlib.servers import FTPServer


def main():
    p = argparse.ArgumentParser(description="local FTP server for trying remotefm")
    p.add_argument("--root", default=os.path.join(os.getcwd(), "ftp_root"))
    p.add_argument("--user", default="FTP_TEST")
    p.add_argument("--password", default="FTP_TEST")
    p.add_argument("--port", type=int, default=2121)
    p.add_argument("--read-only", action="store_true")
    args = p.parse_args()

    os.makedirs(args.root, exist_ok=True)

    authorizer = DummyAuthorizer()
    # e=cwd l=list r=retr; the rest are needed for mkdir/rename/copy/delete
    perm = "elr" if args.read_only else "elradfmw"
    authorizer.add_user(args.user, args.password, args.root, perm=perm)

    handler = FTPHandler
    handler.authorizer = authorizer

    address = ("127.0.0.1", args.port)
    server = FTPServer(address, handler)

    print(f"FTP server started on ftp://127.0.0.1:{args.port}")
    print(f"Serving: {args.root}")
    print("Press Ctrl+C to stop.")

    server.serve_forever()


if __name__ == '__main__':
    main()

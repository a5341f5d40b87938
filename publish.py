import argparse
import asyncio
import json
import logging
import os
import sys

import aiohttp

import config

logging.basicConfig(format='%(asctime)s - %(levelname)s - %(message)s', level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)


class PublishError(Exception):
    pass


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Upload a build to an appslot server")
    parser.add_argument("--server", default=config.APPSLOT_SERVER, help="Server base URL")
    sub = parser.add_subparsers(dest="platform", required=True)

    android = sub.add_parser("android", help="Upload an APK or AAB")
    android.add_argument("path")

    ios = sub.add_parser("ios", help="Upload an IPA with a manifest")
    ios.add_argument("path")
    ios.add_argument("--plist", help="Manifest to upload as-is")
    ios.add_argument("--app-name")
    ios.add_argument("--bundle-id")
    ios.add_argument("--version")
    return parser.parse_args(argv)


def upload_url(server, platform):
    return f"{server.rstrip('/')}/upload/{platform}"


def build_form(args, files):
    """Return the multipart form for ``args``; opened file objects are appended to ``files``."""
    form = aiohttp.FormData()

    def attach(field, path):
        f = open(path, "rb")
        files.append(f)
        form.add_field(field, f, filename=os.path.basename(path))

    if args.platform == "android":
        attach("androidFile", args.path)
        return form

    attach("ipaFile", args.path)
    if args.plist:
        attach("plistFile", args.plist)
    else:
        form.add_field("autoGeneratePlist", "true")
        for field, value in (("appName", args.app_name), ("bundleId", args.bundle_id), ("version", args.version)):
            if value:
                form.add_field(field, value)
    return form


async def publish(args):
    url = upload_url(args.server, args.platform)
    files = []
    try:
        form = build_form(args, files)
        logger.info(f"Uploading {args.path} to {url}")
        async with aiohttp.ClientSession() as session:
            async with session.post(url, data=form) as resp:
                text = await resp.text()
                try:
                    body = json.loads(text)
                except ValueError:
                    body = None
                if resp.status // 100 != 2:
                    detail = body.get("error", body) if isinstance(body, dict) else text.strip()
                    raise PublishError(f"Upload failed ({resp.status}): {detail}")
                if not isinstance(body, dict):
                    raise PublishError(f"Unexpected response from server: {text.strip()[:200]}")
                return body
    finally:
        for f in files:
            f.close()


def main(argv=None):
    args = parse_args(argv)
    for path in (args.path, getattr(args, "plist", None)):
        if path and not os.path.isfile(path):
            logger.error(f"File not found: {path}")
            return 1
    try:
        body = asyncio.run(publish(args))
    except (PublishError, aiohttp.ClientError) as e:
        logger.error(str(e))
        return 1
    logger.info(body.get("message", "Uploaded"))
    if "install_url" in body:
        print(body["install_url"])
    return 0


if __name__ == '__main__':
    sys.exit(main())

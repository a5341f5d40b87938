import asyncio

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

import publish


def run_against(handler, argv):
    received = {}

    async def endpoint(request):
        form = await request.post()
        received["path"] = request.path
        received["form"] = {
            key: (value.filename, value.file.read()) if hasattr(value, "filename") else value
            for key, value in form.items()
        }
        return await handler(request)

    async def go():
        app = web.Application()
        app.router.add_post("/upload/{platform}", endpoint)
        async with TestServer(app) as srv:
            args = publish.parse_args(["--server", str(srv.make_url("/"))] + argv)
            return await publish.publish(args)

    return asyncio.run(go()), received


async def ok(request):
    return web.json_response({"message": "ok", "install_url": "itms-services://x"})


def test_upload_url():
    assert publish.upload_url("http://h:3000/", "ios") == "http://h:3000/upload/ios"


def test_android_upload(tmp_path):
    apk = tmp_path / "build.apk"
    apk.write_bytes(b"apk")
    body, received = run_against(ok, ["android", str(apk)])
    assert body["message"] == "ok"
    assert received["path"] == "/upload/android"
    assert received["form"] == {"androidFile": ("build.apk", b"apk")}


def test_ios_upload_generates_manifest(tmp_path):
    ipa = tmp_path / "Runner.ipa"
    ipa.write_bytes(b"ipa")
    _, received = run_against(ok, ["ios", str(ipa), "--app-name", "Demo", "--version", "2.0"])
    assert received["form"] == {
        "ipaFile": ("Runner.ipa", b"ipa"),
        "autoGeneratePlist": "true",
        "appName": "Demo",
        "version": "2.0",
    }


def test_ios_upload_with_plist(tmp_path):
    ipa = tmp_path / "Runner.ipa"
    ipa.write_bytes(b"ipa")
    plist = tmp_path / "manifest.plist"
    plist.write_bytes(b"<plist/>")
    _, received = run_against(ok, ["ios", str(ipa), "--plist", str(plist)])
    assert received["form"] == {
        "ipaFile": ("Runner.ipa", b"ipa"),
        "plistFile": ("manifest.plist", b"<plist/>"),
    }


def test_server_error_raises(tmp_path):
    async def reject(request):
        return web.json_response({"error": "Only Android files can be uploaded (APK, AAB)"}, status=400)

    apk = tmp_path / "build.apk"
    apk.write_bytes(b"apk")
    with pytest.raises(publish.PublishError, match="400"):
        run_against(reject, ["android", str(apk)])


def test_main_missing_file(tmp_path):
    assert publish.main(["android", str(tmp_path / "nope.apk")]) == 1


def test_html_error_page_raises(tmp_path):
    async def bad_gateway(request):
        return web.Response(status=502, text="<html><body>Bad Gateway</body></html>", content_type="text/html")

    apk = tmp_path / "build.apk"
    apk.write_bytes(b"apk")
    with pytest.raises(publish.PublishError, match="502.*Bad Gateway"):
        run_against(bad_gateway, ["android", str(apk)])


def test_non_object_error_body_raises(tmp_path):
    async def listing(request):
        return web.json_response(["nope"], status=400)

    apk = tmp_path / "build.apk"
    apk.write_bytes(b"apk")
    with pytest.raises(publish.PublishError, match="400"):
        run_against(listing, ["android", str(apk)])


def test_created_status_is_success(tmp_path):
    async def created(request):
        return web.json_response({"message": "stored"}, status=201)

    apk = tmp_path / "build.apk"
    apk.write_bytes(b"apk")
    body, _ = run_against(created, ["android", str(apk)])
    assert body == {"message": "stored"}


def test_main_reports_html_error(tmp_path, monkeypatch):
    async def failing(args):
        raise publish.PublishError("Upload failed (502): Bad Gateway")

    apk = tmp_path / "build.apk"
    apk.write_bytes(b"apk")
    monkeypatch.setattr(publish, "publish", failing)
    assert publish.main(["android", str(apk)]) == 1

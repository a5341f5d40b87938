from fastapi import FastAPI, File, Form, UploadFile, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
from typing import List, Optional
import os
import logging
import config
from manifest import ManifestFields, generate_plist, install_link
from store import SlotStore, SlotError, ANDROID, IOS, APK_MIME

# Setup logging
logging.basicConfig(format='%(asctime)s - %(levelname)s - %(message)s', level=config.LOG_LEVEL)
logging.getLogger('httpx').setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

app = FastAPI(title="appslot")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

store = SlotStore(config.UPLOAD_DIR, chunk_size=config.CHUNK_SIZE)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    # e.g. a file field sent as plain text
    errors = exc.errors()
    field = errors[0]["loc"][-1] if errors and errors[0].get("loc") else "request"
    logger.warning(f"Malformed request on {request.url.path}: {errors}")
    return JSONResponse(status_code=400, content={"error": f"Invalid value for {field}"})


@app.exception_handler(OSError)
async def storage_error_handler(request: Request, exc: OSError):
    logger.error(f"Storage failure on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(status_code=500, content={"error": str(exc)})


def base_url(request: Request):
    if config.PUBLIC_BASE_URL:
        return config.PUBLIC_BASE_URL
    return str(request.base_url).rstrip("/")


@app.get("/")
async def index():
    if not os.path.isfile(config.INDEX_FILE):
        raise HTTPException(status_code=404, detail="Upload page not found")
    return FileResponse(config.INDEX_FILE, media_type="text/html")


@app.post("/upload/android")
async def upload_android(androidFile: Optional[UploadFile] = File(None)):
    if androidFile is None or not androidFile.filename:
        raise HTTPException(status_code=400, detail="No file was uploaded")
    try:
        path = await store.save_android(androidFile, androidFile.filename, androidFile.content_type)
    except SlotError as e:
        logger.warning(f"Rejected Android upload {androidFile.filename}: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    filename = os.path.basename(path)
    logger.info(f"Android app uploaded: {androidFile.filename} -> {filename}")
    return {"message": "Android app uploaded successfully", "filename": filename}


@app.post("/upload/ios")
async def upload_ios(
    request: Request,
    ipaFile: Optional[UploadFile] = File(None),
    plistFile: Optional[UploadFile] = File(None),
    autoGeneratePlist: Optional[List[str]] = Form(None),
    appName: Optional[List[str]] = Form(None),
    bundleId: Optional[List[str]] = Form(None),
    version: Optional[List[str]] = Form(None),
):
    if ipaFile is None or not ipaFile.filename:
        raise HTTPException(status_code=400, detail="An IPA file is required")
    has_plist = plistFile is not None and bool(plistFile.filename)
    generate = bool(autoGeneratePlist) and autoGeneratePlist[0] == "true"

    # Validate everything before touching the slot
    try:
        SlotStore.check_ipa_name(ipaFile.filename)
        if has_plist:
            SlotStore.check_plist_name(plistFile.filename)
    except SlotError as e:
        logger.warning(f"Rejected iOS upload: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    if not has_plist and not generate:
        raise HTTPException(
            status_code=400,
            detail="Select a PLIST file or provide details to generate one",
        )

    root = base_url(request)
    if has_plist:
        await store.save_ios(ipaFile, ipaFile.filename, plistFile, plistFile.filename)
        logger.info(f"iOS app uploaded with supplied manifest {plistFile.filename}")
    else:
        fields = ManifestFields.from_form(appName, bundleId, version)
        ipa_url = f"{root}/download/ios-ipa"
        manifest = generate_plist(fields.app_name, fields.bundle_id, fields.version, ipa_url)
        await store.save_ios(ipaFile, ipaFile.filename, manifest)
        logger.info(f"iOS app uploaded, generated manifest for {fields.bundle_id} {fields.version}")

    return {
        "message": "iOS app uploaded successfully",
        "install_url": install_link(f"{root}/download/ios"),
    }


@app.get("/download/android")
async def download_android():
    path = store.current_binary(ANDROID)
    if path is None:
        logger.info("Android download requested but slot is empty")
        raise HTTPException(status_code=404, detail="No Android app file available")
    filename = os.path.basename(path)
    media_type = APK_MIME if filename.endswith(".apk") else "application/octet-stream"
    return FileResponse(path, media_type=media_type, filename=filename)


@app.get("/download/ios")
async def download_ios_manifest():
    # Served inline so iOS can read it from the itms-services link
    path = store.current_manifest()
    if path is None:
        raise HTTPException(status_code=404, detail="No iOS app PLIST file available")
    return FileResponse(path, media_type="application/xml")


@app.get("/download/ios-ipa")
async def download_ios_ipa():
    path = store.current_binary(IOS)
    if path is None:
        raise HTTPException(status_code=404, detail="No iOS app IPA file available")
    return FileResponse(path, media_type="application/octet-stream", filename=os.path.basename(path))


@app.get("/check/android")
async def check_android():
    if store.android_ready():
        return {"exists": True}
    return JSONResponse(status_code=404, content={"exists": False})


@app.get("/check/ios")
async def check_ios():
    if store.ios_ready():
        return {"exists": True}
    return JSONResponse(status_code=404, content={"exists": False})


# Mounted last so the routes above take precedence
if os.path.isdir(config.PUBLIC_DIR):
    app.mount("/", StaticFiles(directory=config.PUBLIC_DIR), name="public")


if __name__ == "__main__":
    import uvicorn
    logger.info(f"Server running at http://localhost:{config.PORT}")
    uvicorn.run(app, host=config.HOST, port=config.PORT)

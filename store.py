import os
import tempfile
import logging

logger = logging.getLogger(__name__)

ANDROID = "android"
IOS = "ios"
PLATFORMS = (ANDROID, IOS)

APK_MIME = "application/vnd.android.package-archive"
ANDROID_EXTENSIONS = (".apk", ".aab")
IPA_NAME = "app.ipa"
PLIST_NAME = "app.plist"

BINARY_EXTENSIONS = {
    ANDROID: ANDROID_EXTENSIONS,
    IOS: (".ipa",),
}

TEMP_PREFIX = ".upload-"
TEMP_SUFFIX = ".part"


class SlotError(Exception):
    """Base error for slot store operations."""


class RejectedFileError(SlotError):
    """Upload does not match the slot's accepted file types."""


class UnknownPlatformError(SlotError):
    pass


def _extension(filename):
    return os.path.splitext(filename or "")[1].lower()


class SlotStore:
    """Directory-backed store holding the current build for each platform.

    Every slot keeps at most one binary. Saving a new binary streams it into a
    temporary file next to the slot, removes the previous binaries and renames
    the temporary file into place. There is no locking, so concurrent uploads
    to the same slot resolve as last writer wins.
    """

    def __init__(self, root, chunk_size=1024 * 1024):
        self.root = os.path.abspath(root)
        self.chunk_size = chunk_size
        for platform in PLATFORMS:
            os.makedirs(self.slot_dir(platform), exist_ok=True)

    def slot_dir(self, platform):
        if platform not in PLATFORMS:
            raise UnknownPlatformError(f"Unknown platform: {platform}")
        return os.path.join(self.root, platform)

    def _listing(self, platform):
        # Sorted so that lookups are stable if a slot somehow holds two binaries
        slot = self.slot_dir(platform)
        return sorted(
            name for name in os.listdir(slot)
            if not name.startswith(TEMP_PREFIX) and os.path.isfile(os.path.join(slot, name))
        )

    async def _write_temp(self, platform, source):
        """Write ``source`` (bytes or an async reader) to a temp file in the slot."""
        slot = self.slot_dir(platform)
        fd, temp_path = tempfile.mkstemp(prefix=TEMP_PREFIX, suffix=TEMP_SUFFIX, dir=slot)
        size = 0
        try:
            with os.fdopen(fd, "wb") as f:
                if isinstance(source, (bytes, bytearray)):
                    f.write(source)
                    size = len(source)
                else:
                    while True:
                        chunk = await source.read(self.chunk_size)
                        if not chunk:
                            break
                        f.write(chunk)
                        size += len(chunk)
        except BaseException:
            os.remove(temp_path)
            raise
        return temp_path, size

    def _drop_stale(self, platform, keep):
        for name in self._listing(platform):
            if name != keep and _extension(name) in BINARY_EXTENSIONS[platform]:
                os.remove(os.path.join(self.slot_dir(platform), name))
                logger.info(f"Removed stale {platform} binary: {name}")

    def _commit(self, platform, temp_path, final_name):
        # Manifests sit beside the IPA, only binaries displace each other
        if _extension(final_name) in BINARY_EXTENSIONS[platform]:
            self._drop_stale(platform, keep=final_name)
        final_path = os.path.join(self.slot_dir(platform), final_name)
        os.replace(temp_path, final_path)
        return final_path

    @staticmethod
    def _discard(temp_paths):
        for temp_path in temp_paths:
            if os.path.exists(temp_path):
                os.remove(temp_path)

    async def _store(self, platform, files):
        """Stage every ``(source, final_name)`` pair, then commit them together.

        Nothing in the slot changes until all sources have been written out.
        """
        staged = []
        try:
            for source, final_name in files:
                temp_path, size = await self._write_temp(platform, source)
                staged.append((temp_path, final_name, size))
            paths = [self._commit(platform, temp_path, final_name) for temp_path, final_name, _ in staged]
        except BaseException:
            self._discard(temp_path for temp_path, _, _ in staged)
            raise
        for _, final_name, size in staged:
            logger.info(f"Stored {platform} file {final_name} ({size} bytes)")
        return paths

    @staticmethod
    def android_name(original_name, content_type=None):
        """Return the slot filename for an Android upload or raise RejectedFileError."""
        ext = _extension(original_name)
        if ext in ANDROID_EXTENSIONS:
            return f"app{ext}"
        if content_type == APK_MIME:
            return "app.apk"
        raise RejectedFileError("Only Android files can be uploaded (APK, AAB)")

    @staticmethod
    def check_ipa_name(original_name):
        if _extension(original_name) != ".ipa":
            raise RejectedFileError("Only IPA or PLIST files can be uploaded")

    @staticmethod
    def check_plist_name(original_name):
        if _extension(original_name) != ".plist":
            raise RejectedFileError("Only IPA or PLIST files can be uploaded")

    async def save_android(self, stream, original_name, content_type=None):
        final_name = self.android_name(original_name, content_type)
        (path,) = await self._store(ANDROID, [(stream, final_name)])
        return path

    async def save_ipa(self, stream, original_name):
        self.check_ipa_name(original_name)
        (path,) = await self._store(IOS, [(stream, IPA_NAME)])
        return path

    async def save_plist(self, data_or_stream, original_name=None):
        """Store a manifest, either generated bytes or an uploaded stream."""
        if original_name is not None:
            self.check_plist_name(original_name)
        (path,) = await self._store(IOS, [(data_or_stream, PLIST_NAME)])
        return path

    async def save_ios(self, ipa_stream, ipa_name, manifest, manifest_name=None):
        """Replace the IPA and its manifest as one upload.

        ``manifest`` is generated bytes or an uploaded stream. Both files are
        staged before either replaces the current pair.
        """
        self.check_ipa_name(ipa_name)
        if manifest_name is not None:
            self.check_plist_name(manifest_name)
        return await self._store(IOS, [(ipa_stream, IPA_NAME), (manifest, PLIST_NAME)])

    def current_binary(self, platform):
        extensions = BINARY_EXTENSIONS.get(platform, ())
        for name in self._listing(platform):
            if _extension(name) in extensions:
                return os.path.join(self.slot_dir(platform), name)
        return None

    def current_manifest(self):
        for name in self._listing(IOS):
            if _extension(name) == ".plist":
                return os.path.join(self.slot_dir(IOS), name)
        return None

    def android_ready(self):
        return self.current_binary(ANDROID) is not None

    def ios_ready(self):
        return self.current_binary(IOS) is not None and self.current_manifest() is not None

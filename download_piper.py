import io
import logging
import os
import platform
import tarfile
import zipfile

import requests

import config

log = logging.getLogger("venuecheck.setup")

PIPER_RELEASE = "https://github.com/rhasspy/piper/releases/download/2023.11.14-2"
PIPER_URLS = {
    ("Windows", "amd64"): f"{PIPER_RELEASE}/piper_windows_amd64.zip",
    ("Linux", "aarch64"): f"{PIPER_RELEASE}/piper_linux_aarch64.tar.gz",  # Pi 4
    ("Linux", "x86_64"): f"{PIPER_RELEASE}/piper_linux_x86_64.tar.gz",
}

VOICE_URL = "https://huggingface.co/rhasspy/piper-voices/resolve/v1.0.0/en/en_US/amy/medium/en_US-amy-medium.onnx"
VOICE_CONFIG_URL = VOICE_URL + ".json"


def piper_url(system=None, machine=None):
    """
    Release archive for this platform, or None when there is no prebuilt binary.
    """
    system = system or platform.system()
    machine = (machine or platform.machine()).lower()
    if machine in ("arm64", "aarch64"):
        machine = "aarch64"
    elif machine in ("amd64", "x86_64"):
        machine = "amd64" if system == "Windows" else "x86_64"
    return PIPER_URLS.get((system, machine))


def download_file(url, target_path, timeout=60):
    log.info("Downloading %s...", url)
    response = requests.get(url, stream=True, timeout=timeout)
    response.raise_for_status()
    with open(target_path, 'wb') as f:
        for chunk in response.iter_content(1024 * 64):
            f.write(chunk)
    log.info("Saved to %s", target_path)


def extract_archive(content, url, target_dir):
    if url.endswith(".zip"):
        with zipfile.ZipFile(io.BytesIO(content)) as z:
            z.extractall(target_dir)
    else:
        with tarfile.open(fileobj=io.BytesIO(content), mode="r:gz") as z:
            z.extractall(target_dir)


def setup_piper():
    # Archives unpack to <dir>/piper/piper[.exe]
    piper_root = os.path.dirname(os.path.dirname(config.PIPER_BINARY))
    os.makedirs(piper_root, exist_ok=True)

    if not os.path.exists(config.PIPER_BINARY):
        url = piper_url()
        if url is None:
            log.warning("No automatic download for %s %s. Please download Piper manually.",
                        platform.system(), platform.machine())
            return False

        log.info("Fetching Piper binary from: %s", url)
        try:
            r = requests.get(url, timeout=120)
            r.raise_for_status()
        except requests.RequestException as e:
            log.error("Error downloading Piper binary: %s", e)
            return False

        extract_archive(r.content, url, piper_root)
        log.info("Extracted Piper.")
        if os.name != 'nt' and os.path.exists(config.PIPER_BINARY):
            os.chmod(config.PIPER_BINARY, 0o755)

    if not os.path.exists(config.PIPER_MODEL):
        log.info("Downloading Voice Model (Amy)...")
        try:
            download_file(VOICE_URL, config.PIPER_MODEL)
            download_file(VOICE_CONFIG_URL, config.PIPER_MODEL + ".json")
        except requests.RequestException as e:
            log.error("Failed to download voice model: %s", e)
            return False
    return True


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    setup_piper()

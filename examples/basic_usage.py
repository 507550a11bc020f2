#!/usr/bin/env python3
"""
Basic usage examples for Card Uploads.

This script demonstrates the most common operations:
- Starting a resumable upload with a progress callback
- Pausing and resuming it
- Listing uploads recorded in the ledger
- Listing the attachments of a card

Requires CARD_UPLOADS_API_URL (and usually CARD_UPLOADS_TOKEN).
"""

import asyncio
import os
import sys
import tempfile
from pathlib import Path

from card_uploads import (
    CardUploadAPI,
    CardUploadError,
    ConfigurationError,
    UploaderConfig,
    UploadProgress,
)


def show_progress(progress: UploadProgress) -> None:
    print(
        f"   {progress.upload_id}: {progress.status:<9} "
        f"{progress.uploaded_bytes}/{progress.file_size} bytes "
        f"({progress.progress_percent:.0f}%)"
    )


async def demo(card_id: int) -> None:
    """Demonstrate a paused and resumed upload to ``card_id``."""
    try:
        config = UploaderConfig.from_env(ledger_path=os.path.join(tempfile.gettempdir(), "demo-uploads.db"))
    except ConfigurationError as e:
        print(f"❌ {e}")
        return

    print("\n" + "=" * 50)
    print("CARD UPLOADS DEMO")
    print("=" * 50)

    with tempfile.TemporaryDirectory() as temp_dir:
        demo_file = Path(temp_dir) / "demo.bin"
        demo_file.write_bytes(os.urandom(3 * 1024 * 1024 + 512))

        async with CardUploadAPI(config, progress_callback=show_progress) as api:
            # 1. Start a resumable upload
            print(f"\n1. Uploading {demo_file.name} to card {card_id}...")
            upload_id = await api.start_upload(demo_file, card_id)

            # 2. Pause it once the first chunk is through
            while True:
                progress = api.get_progress(upload_id)
                if progress is None or progress.uploaded_bytes > 0 or progress.status != "uploading":
                    break
                await asyncio.sleep(0.05)
            print("\n2. Pausing...")
            try:
                await api.pause(upload_id)
            except CardUploadError as e:
                print(f"   ℹ️  Could not pause: {e}")

            # 3. The ledger still knows about it
            print("\n3. Uploads in the ledger:")
            for item in api.list_uploads():
                print(f"   • {item.file_name} ({item.status}, {item.progress_percent:.0f}%)")

            # 4. Resume and wait for the attachment
            print("\n4. Resuming...")
            try:
                await api.resume(upload_id)
                attachment = await api.wait(upload_id)
                print(f"   ✅ Attached as {attachment.file_name if attachment else upload_id}")
            except CardUploadError as e:
                print(f"   ❌ Upload failed: {e}")

            # 5. List the card's attachments
            print(f"\n5. Attachments of card {card_id}:")
            try:
                for item in api.list_attachments(card_id):
                    print(f"   • {item.file_name} ({item.file_size} bytes)")
            except CardUploadError as e:
                print(f"   ❌ Error listing attachments: {e}")


def main():
    if len(sys.argv) != 2:
        print("Usage: python examples/basic_usage.py CARD_ID")
        sys.exit(1)
    asyncio.run(demo(int(sys.argv[1])))


if __name__ == "__main__":
    main()

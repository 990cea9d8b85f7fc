import pytest

from util.errors import BlobNotFound, StoreUnavailable


async def test_positional_writes_assemble_out_of_order(blobs):
    blob_id = await blobs.create({"name": "a.bin", "mimeType": "application/octet-stream"})
    await blobs.write(blob_id, b"world", offset=5)
    await blobs.write(blob_id, b"hello", offset=0)
    await blobs.write(blob_id, b"hello", offset=0)

    assert await blobs.read_all(blob_id) == b"helloworld"
    meta = await blobs.get_metadata(blob_id)
    assert (meta.name, meta.size) == ("a.bin", 10)


async def test_write_without_offset_replaces_content(blobs):
    blob_id = await blobs.create({"name": "a.txt", "mimeType": "text/plain"})
    await blobs.write(blob_id, b"0123456789")

    await blobs.write(blob_id, b"ab", offset=0)
    assert await blobs.read_all(blob_id) == b"ab23456789"

    await blobs.write(blob_id, b"xyz")
    assert await blobs.read_all(blob_id) == b"xyz"


async def test_read_stream_yields_bounded_parts(blobs):
    data = bytes(range(256)) * 1024
    blob_id = await blobs.create({"name": "big.bin"})
    await blobs.write(blob_id, data)

    parts = [p async for p in blobs.read_stream(blob_id)]
    assert len(parts) == 4
    assert b"".join(parts) == data


async def test_missing_blob_raises_not_found(blobs):
    with pytest.raises(BlobNotFound) as exc:
        await blobs.get_metadata("missing")
    assert isinstance(exc.value, StoreUnavailable)
    assert exc.value.http_status == 404

    with pytest.raises(BlobNotFound):
        await blobs.write("missing", b"x")


async def test_delete_removes_blob(blobs):
    blob_id = await blobs.create({"name": "gone.txt", "mimeType": "text/plain"})
    await blobs.delete(blob_id)
    with pytest.raises(BlobNotFound):
        await blobs.delete(blob_id)

from unittest import mock

import pytest

from clubhouse import storage, storage_api
from clubhouse.storage_api import StorageApiError, StorageClient

PLAYER_ID = "3f2b8c1e-9d4a-4b7e-8f21-0c6d5e4a3b21"
BUCKET = "player-photos"


def _response(status_code, payload=None, text=""):
    response = mock.Mock()
    response.status_code = status_code
    response.json.return_value = payload
    response.text = text
    return response


@pytest.fixture
def client():
    return StorageClient("https://club.supabase.co/", "anon-key")


def test_client_requires_configuration():
    with pytest.raises(StorageApiError, match="Missing service environment variables"):
        StorageClient("", "key")


def test_get_storage_client_is_a_singleton(monkeypatch):
    storage_api.reset_storage_client()
    settings = mock.Mock(service_url="https://club.supabase.co", service_key="anon-key")
    first = storage_api.get_storage_client(settings)
    assert storage_api.get_storage_client() is first
    storage_api.reset_storage_client()


def test_upload_posts_bytes_with_headers(client):
    with mock.patch.object(storage_api.requests, "post", return_value=_response(200, {"Key": f"{BUCKET}/a/b.jpg"})) as post:
        path = client.upload(BUCKET, "a/b.jpg", b"data", "image/jpeg")
    assert path == "a/b.jpg"
    url = post.call_args.args[0]
    headers = post.call_args.kwargs["headers"]
    assert url == f"https://club.supabase.co/storage/v1/object/{BUCKET}/a/b.jpg"
    assert headers["Authorization"] == "Bearer anon-key"
    assert headers["apikey"] == "anon-key"
    assert headers["x-upsert"] == "false"


def test_upload_raises_on_error(client):
    with mock.patch.object(storage_api.requests, "post", return_value=_response(400, {}, "bad")):
        with pytest.raises(StorageApiError, match="Upload failed: 400"):
            client.upload(BUCKET, "a/b.jpg", b"data", "image/jpeg")


def test_signed_and_public_urls(client):
    payload = {"signedURL": f"/object/sign/{BUCKET}/a/b.jpg?token=abc"}
    with mock.patch.object(storage_api.requests, "post", return_value=_response(200, payload)) as post:
        url = client.create_signed_url(BUCKET, "a/b.jpg", 3600)
    assert url == f"https://club.supabase.co/storage/v1/object/sign/{BUCKET}/a/b.jpg?token=abc"
    assert post.call_args.kwargs["json"] == {"expiresIn": 3600}
    assert client.public_url(BUCKET, "a/b.jpg") == f"https://club.supabase.co/storage/v1/object/public/{BUCKET}/a/b.jpg"


def test_remove_sends_prefixes(client):
    with mock.patch.object(storage_api.requests, "delete", return_value=_response(200, [])) as delete:
        client.remove(BUCKET, ["a/b.jpg"])
    assert delete.call_args.kwargs["json"] == {"prefixes": ["a/b.jpg"]}


def test_validate_image_file():
    assert storage.validate_image_file(1024, "image/png").valid
    too_big = storage.validate_image_file(6 * 1024 * 1024, "image/png")
    assert too_big.error == "File size must be less than 5MB"
    wrong_type = storage.validate_image_file(1024, "image/gif")
    assert wrong_type.error == "File must be JPEG, PNG, or WebP format"


def test_generate_player_photo_path():
    assert storage.generate_player_photo_path(PLAYER_ID, "Me.PNG", now_ms=1700000000000) == (
        f"{PLAYER_ID}/profile_1700000000000.png"
    )
    assert storage.generate_player_photo_path(PLAYER_ID, "noext", now_ms=5) == f"{PLAYER_ID}/profile_5.jpg"


def test_signed_url_helper_swallows_errors():
    fake_client = mock.Mock()
    fake_client.create_signed_url.side_effect = StorageApiError("nope")
    assert storage.get_player_photo_signed_url(fake_client, BUCKET, "a/b.jpg") is None
    assert storage.get_player_photo_signed_url(fake_client, BUCKET, "") is None


def test_upload_and_save_replaces_old_photo(fake_db):
    player_id = fake_db.add_player("Mere", "Walker")
    fake_client = mock.Mock()
    fake_client.upload.side_effect = lambda bucket, path, content, content_type: path
    fake_client.create_signed_url.return_value = "https://signed"

    result = storage.upload_and_save_player_photo(
        fake_client, BUCKET, "db", player_id, "me.jpg", b"jpeg", "image/jpeg", old_storage_path="old/photo.jpg"
    )

    assert result.success
    assert result.path.startswith(f"{player_id}/profile_")
    assert fake_db.players[player_id]["photo_storage_path"] == result.path
    assert fake_db.players[player_id]["photo_url"] == "https://signed"
    fake_client.remove.assert_called_once_with(BUCKET, ["old/photo.jpg"])


def test_upload_and_save_rolls_back_when_row_missing(fake_db):
    fake_client = mock.Mock()
    fake_client.upload.side_effect = lambda bucket, path, content, content_type: path
    fake_client.create_signed_url.return_value = "https://signed"

    result = storage.upload_and_save_player_photo(
        fake_client, BUCKET, "db", PLAYER_ID, "me.jpg", b"jpeg", "image/jpeg", old_storage_path="old/photo.jpg"
    )

    assert not result.success
    assert result.error == "Failed to update database"
    removed = fake_client.remove.call_args.args[1]
    assert removed[0].startswith(f"{PLAYER_ID}/profile_")
    assert fake_client.remove.call_count == 1


def test_upload_rejects_invalid_file_without_calling_storage():
    fake_client = mock.Mock()
    result = storage.upload_player_photo(fake_client, BUCKET, PLAYER_ID, "me.gif", b"gif", "image/gif")
    assert result.error == "File must be JPEG, PNG, or WebP format"
    fake_client.upload.assert_not_called()

import io
from PIL import Image


def make_png_bytes(size=(100, 100)):
    img = Image.new("RGB", size, color="blue")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def upload(test_client, name="f.png", tags="nature,sky", data=None):
    files = {"file": (name, data or make_png_bytes(), "image/png")}
    return test_client.post("/images", data={"tags": tags}, files=files)


# ------------------------------
# /images [POST]
# ------------------------------

def test_upload_image_success(test_client):
    resp = upload(test_client, name="f_100x100.png", tags="nature, sky ,nature")
    assert resp.status_code == 201
    body = resp.json()
    assert body["image_id"].startswith("img_")
    assert body["filename"] == "f.png"
    assert body["original_name"] == "f_100x100.png"
    assert body["tags"] == ["nature", "sky"]
    assert resp.headers["X-Content-Type-Options"] == "nosniff"


def test_upload_requires_tags(test_client):
    resp = upload(test_client, tags=" , ")
    assert resp.status_code == 400
    assert "tag" in resp.json()["detail"]


def test_upload_invalid_file_type(test_client):
    files = {"file": ("f.txt", b"notimg", "text/plain")}
    resp = test_client.post("/images", data={"tags": "a"}, files=files)
    assert resp.status_code == 400


def test_upload_invalid_image_bytes(test_client):
    resp = upload(test_client, data=b"not really a png")
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Invalid image file"


# ------------------------------
# /images/{id} [GET]
# ------------------------------

def test_get_image_returns_original_bytes(test_client):
    data = make_png_bytes()
    img_id = upload(test_client, data=data).json()["image_id"]

    resp = test_client.get(f"/images/{img_id}")
    assert resp.status_code == 200
    assert resp.content == data
    assert resp.headers["content-type"] == "image/png"


def test_get_nonexistent_image(test_client):
    resp = test_client.get("/images/nonexistent")
    assert resp.status_code == 404
    assert resp.json() == {"detail": "Image with ID 'nonexistent' not found."}


# ------------------------------
# /images/search, /images/tags
# ------------------------------

def test_search_images(test_client):
    upload(test_client, tags="nature")
    upload(test_client, tags="city")

    resp = test_client.get("/images/search", params={"tags": "NAT"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 1
    assert body["images"][0]["tags"] == ["nature"]
    assert "buffer" not in body["images"][0]

    resp = test_client.get("/images/search")
    assert resp.json()["total"] == 2


def test_search_pagination(test_client):
    ids = [upload(test_client, tags="a").json()["image_id"] for _ in range(3)]

    first = test_client.get("/images/search", params={"tags": "a", "limit": 2, "offset": 0}).json()
    second = test_client.get("/images/search", params={"tags": "a", "limit": 2, "offset": 2}).json()

    returned = [i["image_id"] for i in first["images"] + second["images"]]
    assert sorted(returned) == sorted(ids)
    assert first["total"] == 2 and second["total"] == 1


def test_search_invalid_pagination(test_client):
    resp = test_client.get("/images/search", params={"offset": -1})
    assert resp.status_code == 422
    resp = test_client.get("/images/search", params={"limit": 0})
    assert resp.status_code == 422


def test_list_tags(test_client):
    upload(test_client, tags="b,a")
    upload(test_client, tags="a,c")

    resp = test_client.get("/images/tags")
    assert resp.status_code == 200
    assert resp.json() == {"tags": ["a", "b", "c"]}


# ------------------------------
# /images/{id}/download [GET rendition]
# ------------------------------

def test_download_png(test_client):
    img_id = upload(test_client, name="leaf.png").json()["image_id"]

    resp = test_client.get(f"/images/{img_id}/download", params={"format": "png", "size": 256})
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/png"
    assert 'filename="leaf_256px.png"' in resp.headers["content-disposition"]
    assert Image.open(io.BytesIO(resp.content)).size == (256, 256)


def test_download_default_size(test_client):
    img_id = upload(test_client).json()["image_id"]
    resp = test_client.get(f"/images/{img_id}/download", params={"format": "png"})
    assert resp.status_code == 200
    assert Image.open(io.BytesIO(resp.content)).size == (1024, 1024)


def test_download_ico_clamped(test_client):
    img_id = upload(test_client, name="fav.png").json()["image_id"]

    resp = test_client.get(f"/images/{img_id}/download", params={"format": "ico", "size": 512})
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/png"
    assert 'filename="fav_512px.png"' in resp.headers["content-disposition"]
    assert Image.open(io.BytesIO(resp.content)).size == (256, 256)


def test_download_svg(test_client):
    img_id = upload(test_client, name="logo.png").json()["image_id"]

    resp = test_client.get(f"/images/{img_id}/download", params={"format": "svg", "size": 64})
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("image/svg+xml")
    assert resp.content.startswith(b"<svg")
    assert b"data:image/png;base64," in resp.content


def test_download_invalid_size(test_client):
    img_id = upload(test_client).json()["image_id"]
    resp = test_client.get(f"/images/{img_id}/download", params={"format": "png", "size": 999})
    assert resp.status_code == 400
    assert resp.json() == {"detail": "Invalid size: 999."}


def test_download_non_numeric_size(test_client):
    img_id = upload(test_client).json()["image_id"]
    resp = test_client.get(f"/images/{img_id}/download", params={"format": "png", "size": "abc"})
    assert resp.status_code == 400
    assert resp.json() == {"detail": "Invalid size: abc."}


def test_download_missing_format(test_client):
    img_id = upload(test_client).json()["image_id"]
    resp = test_client.get(f"/images/{img_id}/download", params={"size": 64})
    assert resp.status_code == 400
    resp = test_client.get(f"/images/{img_id}/download", params={"format": "gif", "size": 64})
    assert resp.status_code == 400


def test_download_nonexistent_image(test_client):
    resp = test_client.get("/images/nonexistent/download", params={"format": "png", "size": 64})
    assert resp.status_code == 404


def test_health(test_client):
    resp = test_client.get("/")
    assert resp.status_code == 200

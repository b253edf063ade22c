import json
import sys

import requests


def upload(endpoint_url: str, image_path: str, content_type: str):
    """Upload one image and return the API's descriptor"""
    with open(image_path, "rb") as f:
        files = {"file": (image_path.split("/")[-1], f, content_type)}
        response = requests.post(f"{endpoint_url}/api/upload", files=files)

    if response.status_code == 200:
        result = response.json()
        print(f"✅ Uploaded: {result['filename']} ({result['size']} bytes)")
        print(f"URL: {endpoint_url}{result['url']}")
        return result

    print(f"❌ Upload failed: {response.status_code}")
    print(response.text)
    return None


def process(endpoint_url: str, upload_url: str, output_format: str = "JPG"):
    """Convert a previously uploaded file"""
    config = {
        "outputFormat": output_format,
        "resize": True,
        "width": 800,
        "height": 600,
        "maintainAspectRatio": True,
        "colorCorrection": True,
        "quality": 85,
    }
    data = {"files": upload_url, "config": json.dumps(config)}

    print("Sending processing request...")
    response = requests.post(f"{endpoint_url}/api/process", data=data)

    if response.status_code == 200:
        result = response.json()
        for item in result["files"]:
            meta = item["metadata"]
            print(f"✅ {item['original']} -> {item['processed']}")
            print(f"   {meta['width']}x{meta['height']} {meta['format']}, {meta['size']} bytes")
            print(f"   {endpoint_url}{item['url']}")
        return result

    print(f"❌ Processing failed: {response.status_code}")
    print(response.text)
    return None


def test_rejects_fake_image(endpoint_url: str):
    """A text payload declared as PNG should be rejected"""
    print("\nTesting upload of a non-image (should fail)...")
    files = {"file": ("fake.png", b"definitely not a png", "image/png")}
    response = requests.post(f"{endpoint_url}/api/upload", files=files)

    if response.status_code == 400 and response.json().get("code") == "INVALID_FILE_TYPE":
        print("✅ Correctly rejected - invalid file type")
    else:
        print(f"❌ Unexpected response: {response.status_code}")
        print(response.text)


if __name__ == "__main__":
    # Configuration
    endpoint_url = "http://localhost:8000"  # or https://<workspace>--imagemagick-web-api-fastapi-app.modal.run
    image_path = sys.argv[1] if len(sys.argv) > 1 else "test_image.png"

    print("=== Testing ImageMagick Processing API ===")

    uploaded = upload(endpoint_url, image_path, "image/png")
    if uploaded:
        process(endpoint_url, uploaded["url"])

    test_rejects_fake_image(endpoint_url)

import os
import time

import requests
import streamlit as st

API_BASE = os.getenv("MEDIA_GATEWAY_API_BASE", os.getenv("API_BASE", "http://localhost:8080")).rstrip("/")


def _reset_state():
    for key in [
        "result_bytes",
        "result_type",
        "error",
    ]:
        if key in st.session_state:
            del st.session_state[key]
    # Bump the uploader key to clear any previously uploaded file widget state
    if "upload_key" in st.session_state:
        st.session_state["upload_key"] += 1
    else:
        st.session_state["upload_key"] = 1


def _describe_error(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return f"{resp.status_code} {resp.text}"
    detail = body.get("details")
    message = f"{resp.status_code} {body.get('kind', 'error')}: {body.get('error', '')}"
    return f"{message} ({detail})" if detail else message


def _compose(image, watermark, fields: dict[str, str]) -> tuple[bytes, str] | None:
    files = {
        "image": (image.name, image.getvalue(), image.type or "application/octet-stream"),
        "watermark": (watermark.name, watermark.getvalue(), watermark.type or "application/octet-stream"),
    }
    # Transient 5xx and connection errors get a short retry window
    max_attempts = 3
    backoff = 0.5
    for attempt in range(1, max_attempts + 1):
        try:
            resp = requests.post(f"{API_BASE}/convert/image", files=files, data=fields, timeout=120)
        except requests.RequestException as e:
            if attempt < max_attempts:
                time.sleep(backoff)
                backoff *= 1.5
                continue
            st.session_state["error"] = f"Failed to connect to API: {e}"
            return None
        if resp.status_code == 200:
            return resp.content, resp.headers.get("content-type", "image/jpeg")
        if 500 <= resp.status_code < 600 and attempt < max_attempts:
            time.sleep(backoff)
            backoff *= 1.5
            continue
        st.session_state["error"] = f"Composition failed: {_describe_error(resp)}"
        return None
    return None


def main() -> None:
    st.set_page_config(page_title="Media Conversion Gateway", page_icon="🖼️", layout="centered")
    st.title("🖼️ Product Sheet Composer")
    st.caption(f"API base: {API_BASE}")

    if st.button("Restart", type="secondary"):
        _reset_state()
        st.rerun()

    if "upload_key" not in st.session_state:
        st.session_state["upload_key"] = 0
    key = st.session_state["upload_key"]
    image_types = ["png", "jpg", "jpeg", "webp", "gif", "bmp", "tiff"]
    image = st.file_uploader("Subject photo", type=image_types, key=f"image-{key}")  # type: ignore[arg-type]
    watermark = st.file_uploader("Watermark / logo", type=image_types, key=f"watermark-{key}")  # type: ignore[arg-type]

    col1, col2 = st.columns(2)
    with col1:
        layout = st.selectbox("Layout", ["sheet", "overlay"])
        mode = st.selectbox("Watermark mode", ["diagonal", "center"])
        output_format = st.selectbox("Format", ["jpeg", "png"])
    with col2:
        opacity = st.slider("Watermark opacity", 0.0, 1.0, 0.30, 0.05)
        scale = st.slider("Watermark scale", 0.1, 4.0, 2.5, 0.1)
        angle = st.number_input("Watermark angle", value=45.0, step=5.0, disabled=mode != "diagonal")
        quality = st.slider("Quality", 1, 100, 90, disabled=output_format != "jpeg")

    if image and watermark and st.button("Compose", type="primary"):
        fields = {
            "format": output_format,
            "quality": str(quality),
            "layout": layout,
            "watermark_mode": mode,
            "watermark_opacity": str(opacity),
            "watermark_scale": str(scale),
            "watermark_angle": str(angle),
        }
        st.session_state.pop("error", None)
        with st.spinner("Composing..."):
            res = _compose(image, watermark, fields)
        if res:
            st.session_state["result_bytes"], st.session_state["result_type"] = res

    if "result_bytes" in st.session_state:
        st.success("Composition complete!")
        ext = "png" if st.session_state["result_type"] == "image/png" else "jpg"
        st.image(st.session_state["result_bytes"])
        st.download_button(
            label="Download image",
            data=st.session_state["result_bytes"],
            file_name=f"product-sheet.{ext}",
            mime=st.session_state["result_type"],
        )

    if err := st.session_state.get("error"):
        st.error(err)


if __name__ == "__main__":
    main()

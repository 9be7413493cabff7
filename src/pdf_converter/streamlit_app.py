import io
import os
import time

import requests
import streamlit as st

API_BASE = os.getenv("PDF_CONVERTER_API_BASE", os.getenv("API_BASE", "http://localhost:3002")).rstrip("/")
UPLOAD_TYPES = ["pdf", "docx", "doc", "html", "htm", "txt", "xls", "xlsx", "jpg", "jpeg", "png"]


def _reset_state():
    for key in ["result", "pdf_bytes", "error"]:
        if key in st.session_state:
            del st.session_state[key]
    # Bump the uploader key to clear any previously uploaded file widget state
    if "upload_key" in st.session_state:
        st.session_state["upload_key"] += 1
    else:
        st.session_state["upload_key"] = 1


def _convert(uploaded_file: io.BytesIO) -> dict[str, object] | None:
    try:
        files = {"file": (uploaded_file.name, uploaded_file.getvalue(), uploaded_file.type or "application/octet-stream")}
        resp = requests.post(f"{API_BASE}/convert-docx-to-pdf", files=files, timeout=300)
    except requests.RequestException as e:
        st.session_state["error"] = f"Failed to connect to API: {e}"
        return None
    try:
        data = resp.json()
    except ValueError:
        data = {}
    if resp.status_code != 200 or not data.get("success"):
        st.session_state["error"] = f"Conversion failed: {resp.status_code} {data.get('error', resp.text)}"
        return None
    return data


def _download(download_url: str) -> bytes | None:
    # The server purges the PDF shortly after the first successful download
    max_attempts = 3
    backoff = 0.5
    last_text = ""
    for attempt in range(1, max_attempts + 1):
        try:
            resp = requests.get(f"{API_BASE}{download_url}", timeout=60)
        except requests.RequestException as e:
            last_text = str(e)
            if attempt < max_attempts:
                time.sleep(backoff)
                backoff *= 1.5
                continue
            st.session_state["error"] = f"Download failed: {e}"
            return None
        if resp.status_code == 200:
            return resp.content
        last_text = resp.text
        if resp.status_code == 404:
            break
        if 500 <= resp.status_code < 600 and attempt < max_attempts:
            time.sleep(backoff)
            backoff *= 1.5
            continue
        break
    st.session_state["error"] = f"Download error: {last_text}"
    return None


def main() -> None:
    st.set_page_config(page_title="Libre PDF Converter", page_icon="📄", layout="centered")
    st.title("📄 Libre PDF Converter")
    st.caption(f"API base: {API_BASE}")

    if st.button("Restart", type="secondary"):
        _reset_state()
        st.rerun()

    if "upload_key" not in st.session_state:
        st.session_state["upload_key"] = 0
    uploaded = st.file_uploader(
        "Upload a document (DOCX, DOC, HTML, TXT, Excel, images)",
        type=UPLOAD_TYPES,  # type: ignore[arg-type]
        key=f"uploader-{st.session_state['upload_key']}",
    )

    if uploaded and "result" not in st.session_state and st.button("Convert to PDF", type="primary"):
        with st.spinner("Converting..."):
            data = _convert(uploaded)
            pdf = _download(str(data["downloadUrl"])) if data else None
        if data and pdf is not None:
            st.session_state["result"] = data
            st.session_state["pdf_bytes"] = pdf
            st.toast("Conversion complete", icon="✅")

    if "result" in st.session_state:
        data = st.session_state["result"]
        st.success("Conversion complete!")
        st.write(f"{data['originalName']} → {data['convertedName']} ({data['fileSize']} bytes)")
        base, _ = os.path.splitext(str(data["originalName"]))
        st.download_button(
            label="Download PDF",
            data=st.session_state["pdf_bytes"],
            file_name=f"{base or 'converted'}.pdf",
            mime="application/pdf",
        )

    if err := st.session_state.get("error"):
        st.error(err)


if __name__ == "__main__":
    main()

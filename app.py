import logging
import time

import streamlit as st

from config import LOG_LEVEL
from canvas_interaction import CanvasController
from design_pipeline import NOTICE_STALE_RESULT, DesignPipeline, environment_clients
from image_data import to_data_uri
from layout_templates import AVAILABLE_TEMPLATES, TemplateNotFoundError, apply_template
from screen_model import DesignSession
from screen_renderer import (
    DEFAULT_EXPORT_SIZE,
    EXPORT_SIZES,
    export_filename,
    export_session_zip,
    rasterize,
    render_screen_to_bytes,
    render_screen_to_data_uri,
)


logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

st.set_page_config(
    page_title="App Store Screenshot Studio",
    layout="wide"
)

PREVIEW_WIDTH = 360
NUDGE_STEP = 40


@st.cache_resource
def get_clients() -> dict:
    return environment_clients()


if 'session' not in st.session_state:
    st.session_state.session = DesignSession()
if 'pipeline' not in st.session_state:
    # Clients are shared, request tracking is per session
    st.session_state.pipeline = DesignPipeline(**get_clients())
if 'controller' not in st.session_state:
    st.session_state.controller = CanvasController(st.session_state.session)
if 'notices' not in st.session_state:
    st.session_state.notices = []
if 'analysis' not in st.session_state:
    st.session_state.analysis = None
if 'ai_response' not in st.session_state:
    st.session_state.ai_response = None

session: DesignSession = st.session_state.session
controller: CanvasController = st.session_state.controller
pipeline: DesignPipeline = st.session_state.pipeline


def nudge(layer_id: str, dx: float, dy: float) -> None:
    """Move a layer by dragging it through the canvas controller"""
    layer = session.get_layer(layer_id)
    start_x, start_y = layer.x * controller.zoom, layer.y * controller.zoom
    controller.pointer_down(start_x, start_y, layer_id)
    controller.pointer_move(start_x + dx, start_y + dy)
    controller.pointer_up()


st.title("App Store Screenshot Studio")
st.markdown("""
Upload your app screenshots, describe your app, and get store-ready marketing images.
Every generated screen stays editable before you export it.
""")

col1, col2 = st.columns([2, 1])

with col1:
    st.subheader("Describe Your App")

    prompt = st.text_area(
        "App description",
        placeholder="A budgeting app that helps young professionals track expenses and save",
        help="What does your app do, and who is it for?"
    )
    uploads = st.file_uploader(
        "Screenshots",
        type=["png", "jpg", "jpeg", "webp"],
        accept_multiple_files=True,
        help="One marketing screen is created per screenshot"
    )

    if st.button("Generate Screens", type="primary", use_container_width=True):
        if not prompt.strip():
            st.error("Please describe your app first")
            st.stop()

        screenshots = [to_data_uri(f.getvalue(), f.type) for f in uploads or []]
        start_time = time.time()
        future = pipeline.submit(prompt, screenshots)
        with st.spinner("Analyzing screenshots and writing headlines..."):
            result = future.result()

        if pipeline.commit(result, session):
            controller.reset_view()
            st.session_state.notices = result.notices
            st.session_state.analysis = result.analysis
            st.session_state.ai_response = result.ai_response
            st.success(f"Generated {len(result.screens)} screens in {time.time() - start_time:.1f} seconds")
        else:
            st.info(NOTICE_STALE_RESULT)

    for notice in st.session_state.notices:
        st.info(notice)

with col2:
    st.subheader("How It Works")
    st.markdown("""
    1. **Describe**: Tell us what your app does
    2. **Upload**: Add one screenshot per marketing screen
    3. **Generate**: AI picks layouts, colors and headlines
    4. **Edit & Export**: Adjust layers, then download PNG or JPEG

    **Tip**: Without an API key the built-in layouts are used.
    """)

    analysis = st.session_state.analysis
    if analysis is not None:
        st.markdown(f"**Mood**: {analysis.mood}")
        st.markdown("**Colors**: " + " ".join(f"`{c}`" for c in analysis.dominantColors[:6]))

st.divider()

# Screen strip
screen_cols = st.columns(len(session.screens) + 1)
for i, screen in enumerate(session.screens):
    with screen_cols[i]:
        label = f"**{screen.name}**" if screen.id == session.current_screen_id else screen.name
        if st.button(label, key=f"select_{screen.id}", use_container_width=True):
            session.select_screen(screen.id)
            st.rerun()
with screen_cols[-1]:
    if st.button("+ Add Screen", use_container_width=True):
        session.add_screen()
        st.rerun()

current = session.current_screen
col_preview, col_editor = st.columns([2, 1])

with col_preview:
    st.markdown(f"### {current.name}")

    zoom_cols = st.columns(4)
    if zoom_cols[0].button("Zoom −"):
        controller.zoom_out()
    if zoom_cols[1].button("Zoom +"):
        controller.zoom_in()
    if zoom_cols[2].button("Reset View"):
        controller.reset_view()
    zoom_cols[3].markdown(f"{int(controller.zoom * 100)}%")

    try:
        preview = rasterize(current)
        st.image(preview, width=int(PREVIEW_WIDTH * controller.zoom))
    except Exception as e:
        logger.exception("Preview failed")
        st.error(f"Error rendering preview: {str(e)}")

with col_editor:
    st.markdown("### Layers")

    layer_ids = [layer.id for layer in current.layers]
    selected = st.selectbox(
        "Layer",
        options=[None] + layer_ids,
        index=([None] + layer_ids).index(session.selected_layer_id) if session.selected_layer_id in layer_ids else 0,
        format_func=lambda v: "(none)" if v is None else v,
    )
    if selected != session.selected_layer_id:
        session.select_layer(selected)

    layer = session.selected_layer
    if layer is not None:
        if layer.type == "text":
            content = st.text_area("Text", value=layer.content, key=f"content_{layer.id}")
            font_size = st.number_input("Font size", min_value=8.0, value=float(layer.fontSize or 32), key=f"fs_{layer.id}")
            color = st.color_picker("Color", value=layer.color if (layer.color or "").startswith("#") and len(layer.color) == 7 else "#000000", key=f"color_{layer.id}")
            style_cols = st.columns(3)
            bold = style_cols[0].checkbox("Bold", value=layer.bold, key=f"b_{layer.id}")
            italic = style_cols[1].checkbox("Italic", value=layer.italic, key=f"i_{layer.id}")
            underline = style_cols[2].checkbox("Underline", value=layer.underline, key=f"u_{layer.id}")
            align = st.radio("Align", ["left", "center", "right"], index=["left", "center", "right"].index(layer.align),
                             horizontal=True, key=f"align_{layer.id}")
            if st.button("Apply", key=f"apply_{layer.id}"):
                session.update_layer(layer.id, content=content, fontSize=font_size, color=color,
                                     bold=bold, italic=italic, underline=underline, align=align)
                st.rerun()

        if layer.type != "background":
            nudge_cols = st.columns(4)
            for col, (label, dx, dy) in zip(nudge_cols, [("←", -NUDGE_STEP, 0), ("→", NUDGE_STEP, 0),
                                                         ("↑", 0, -NUDGE_STEP), ("↓", 0, NUDGE_STEP)]):
                if col.button(label, key=f"nudge_{label}_{layer.id}"):
                    nudge(layer.id, dx, dy)
                    st.rerun()
            if st.button("Delete Layer", key=f"delete_{layer.id}"):
                session.delete_layer(layer.id)
                st.rerun()

    st.markdown("---")
    if st.button("Add Text"):
        session.add_text_layer()
        st.rerun()

    bg = st.color_picker("Background", value=current.backgroundColor if len(current.backgroundColor) == 7 else "#FFFFFF")
    apply_all = st.checkbox("Apply to all screens")
    if st.button("Set Background"):
        session.set_background(bg, apply_to_all=apply_all)
        st.rerun()

    with st.expander("Templates"):
        template_id = st.selectbox("Template", [t["id"] for t in AVAILABLE_TEMPLATES],
                                   format_func=lambda t: next(x["name"] for x in AVAILABLE_TEMPLATES if x["id"] == t))
        if st.button("Apply Template"):
            mockup = next((l for l in current.layers if l.type == "mockup"), None)
            texts = [l for l in current.layers if l.type == "text"]
            index = session.screens.index(current)
            try:
                layers = apply_template(
                    template_id,
                    mockup.content if mockup else "",
                    texts[0].content if texts else "Your Headline",
                    texts[1].content if len(texts) > 1 else "",
                    index=index,
                )
            except TemplateNotFoundError as e:
                st.error(str(e))
            else:
                session.replace_screens([
                    s.model_copy(update={"layers": tuple(layers), "backgroundColor": layers[0].backgroundColor})
                    if s.id == current.id else s
                    for s in session.screens
                ])
                session.select_screen(current.id)
                st.rerun()

    if len(session.screens) > 1 and st.button("Remove Screen"):
        session.remove_screen(current.id)
        st.rerun()

st.divider()

st.subheader("Export")
export_cols = st.columns(3)
size_name = export_cols[0].selectbox("Size", list(EXPORT_SIZES), index=list(EXPORT_SIZES).index(DEFAULT_EXPORT_SIZE))
fmt = export_cols[1].radio("Format", ["PNG", "JPEG"], horizontal=True)
timestamp = int(time.time() * 1000)
mime = "image/png" if fmt == "PNG" else "image/jpeg"

with export_cols[2]:
    st.download_button(
        label="Download Current Screen",
        data=render_screen_to_bytes(current, size_name, fmt),
        file_name=export_filename(current.name, size_name, fmt, timestamp),
        mime=mime,
        use_container_width=True
    )
    st.download_button(
        label="Download All (ZIP)",
        data=export_session_zip(session.screens, size_name, fmt, timestamp),
        file_name=f"screenshots_{timestamp}.zip",
        mime="application/zip",
        use_container_width=True
    )

with st.expander("Share as Data URI"):
    st.caption("Paste into an <img> tag or a browser address bar")
    if st.button("Create Data URI"):
        st.code(render_screen_to_data_uri(current, size_name, fmt), language=None)

if st.session_state.ai_response is not None:
    with st.expander("View AI Layout JSON"):
        st.json(st.session_state.ai_response.model_dump(exclude_none=True))

st.markdown("---")
st.markdown(
    '<div style="text-align: center; color: #666;">Screenshot Studio | Powered by Gemini and Pillow</div>',
    unsafe_allow_html=True
)

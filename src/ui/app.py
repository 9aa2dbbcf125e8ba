"""Video Study Assistant -- Streamlit UI.

Transcript on the left; chat, summary and study notes on the right.
Citation markers in any text become buttons that jump to the transcript.
"""

from __future__ import annotations

import logging

import streamlit as st
import streamlit.components.v1 as components

from src.config import settings
from src.pipeline_config import JobKind, StepStatus
from src.references.resolver import ReferenceMarker, ReferenceResolver, ScrollRequest, split_references
from src.session.models import format_timestamp
from src.session.state import SessionState
from src.ui.api_client import SCROLL_KEY, get_resolver, get_session, run_job, send_chat

logging.basicConfig(level=settings.log_level)

BUTTONS_PER_ROW = 8

STEP_ICONS: dict[StepStatus, str] = {
    StepStatus.UPCOMING: ":white_circle:",
    StepStatus.CURRENT: ":large_blue_circle:",
    StepStatus.COMPLETED: ":white_check_mark:",
}

# ---------------------------------------------------------------------------
# Page config (must be first Streamlit call)
# ---------------------------------------------------------------------------
st.set_page_config(page_title="Video Study Assistant", layout="wide")

session = get_session()
resolver = get_resolver()


def render_with_references(text: str, key: str, resolver: ReferenceResolver) -> None:
    """Render markdown text followed by one button per citation marker."""
    segments = split_references(text)
    markers = [s for s in segments if isinstance(s, ReferenceMarker)]
    st.markdown(
        "".join(f"**[{s.label}]**" if isinstance(s, ReferenceMarker) else s.text for s in segments)
    )
    if not markers:
        return
    for row in range(0, len(markers), BUTTONS_PER_ROW):
        columns = st.columns(BUTTONS_PER_ROW)
        for offset, marker in enumerate(markers[row : row + BUTTONS_PER_ROW]):
            columns[offset].button(
                marker.label,
                key=f"{key}-ref-{row + offset}",
                on_click=resolver.activate,
                args=(marker.number,),
            )


def render_progress(placeholder: st.delta_generator.DeltaGenerator, kind: JobKind) -> None:
    state = session.run_state(kind)
    with placeholder.container():
        if state.loading:
            st.progress(state.progress, text=state.status or "Starting...")
        steps = session.steps(kind)
        if steps and state.loading:
            st.markdown("  ".join(f"{STEP_ICONS[s.status]} {s.name}" for s in steps))


def scroll_into_view(request: ScrollRequest) -> None:
    components.html(
        "<script>"
        f"const el = window.parent.document.getElementById('entry-{request.entry_id}');"
        f"if (el) el.scrollIntoView({{behavior: '{request.behavior}', block: '{request.block}'}});"
        "</script>",
        height=0,
    )


def transcript_column(session: SessionState) -> None:
    st.subheader("TRANSCRIPT")
    with st.form("transcribe", clear_on_submit=False):
        video_url = st.text_input("YouTube video URL", placeholder="Enter YouTube Video URL")
        submitted = st.form_submit_button(
            "Processing..." if session.is_loading(JobKind.TRANSCRIPT) else "Transcribe",
            disabled=session.is_loading(JobKind.TRANSCRIPT),
        )
    progress = st.empty()
    if submitted and video_url:
        run_job(
            JobKind.TRANSCRIPT,
            on_update=lambda kind: render_progress(progress, kind),
            video_url=video_url,
        )
        st.rerun()

    if session.highlighted_entry_id is not None:
        st.button("Clear highlight", on_click=resolver.clear_highlight)

    for entry in session.transcript:
        highlighted = entry.id == session.highlighted_entry_id
        with st.container(border=True):
            st.markdown(f"<div id='entry-{entry.id}'></div>", unsafe_allow_html=True)
            label = f"**{entry.id + 1}** · `{format_timestamp(entry.start)}`"
            st.markdown(f":blue-background[{label}]" if highlighted else label)
            render_with_references(entry.text, key=f"entry-{entry.id}", resolver=resolver)

    request = st.session_state.pop(SCROLL_KEY, None)
    if request is not None:
        scroll_into_view(request)


def chat_column(session: SessionState) -> None:
    st.subheader("CHATBOT")

    for index, message in enumerate(session.messages):
        with st.chat_message(message.role):
            if message.role == "user":
                st.write(message.content)
            else:
                render_with_references(message.content, key=f"msg-{index}", resolver=resolver)

    progress = st.empty()
    busy = session.is_loading(JobKind.SUMMARY) or session.is_loading(JobKind.NOTES)
    ready = session.is_transcript_processed
    col_summary, col_notes = st.columns(2)
    if col_summary.button("Summarize", disabled=busy or not ready):
        run_job(JobKind.SUMMARY, on_update=lambda kind: render_progress(progress, kind))
        st.rerun()
    if col_notes.button("Make Study Notes", disabled=busy or not ready):
        run_job(JobKind.NOTES, on_update=lambda kind: render_progress(progress, kind))
        st.rerun()

    if ready:
        st.markdown(":green[Transcript processed. You can now chat!]")
    else:
        st.markdown(":red[Please process a transcript before chatting.]")

    prompt = st.chat_input(
        "Ask a question about the transcript..." if ready else "Process a transcript first",
        disabled=not ready,
    )
    if prompt:
        with st.spinner("Thinking..."):
            send_chat(prompt)
        st.rerun()


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------
if session.error:
    st.error(session.error)

left, right = st.columns([2, 3])
with left:
    transcript_column(session)
with right:
    chat_column(session)

"""
Streamlit interface: upload survey data, generate a Results chapter, edit, chart and export it.
"""

import sys
from pathlib import Path
from typing import Any, List

import pandas as pd
import streamlit as st

# Ensure project-root imports work when Streamlit executes from results_writer/frontend.
PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from results_writer.agents.coordinator_agent import CoordinatorAgent
from results_writer.agents.ingestion_agent import IngestionAgent
from results_writer.config import CONFIG, LLMBackend, configure_logging, load_system_prompt
from results_writer.core.llm_interface import LLMInterface, llm
from results_writer.core.state import MEMORY
from results_writer.document.controller import DEFAULT_TITLE, EditableDocumentController
from results_writer.document.toggle import ChartKind, TableChartToggle, ViewMode

BACKEND_OPTIONS = [backend.value for backend in LLMBackend]
EXPORT_MIME = {
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "pdf": "application/pdf",
}

configure_logging()

st.set_page_config(
    page_title="Results Writer",
    page_icon="📊",
    layout="wide",
    initial_sidebar_state="expanded",
)


def _inject_styles() -> None:
    st.markdown(
        """
<style>
.data-table { border-collapse: collapse; width: 100%; margin: 0.5rem 0; }
.data-table th { background: #EEEEEE; font-weight: 600; }
.data-table th, .data-table td { border: 1px solid #CCCCCC; padding: 6px 10px; text-align: left; }
.figure-caption { text-align: center; font-style: italic; color: #555; margin-bottom: 1.2rem; }
</style>
""",
        unsafe_allow_html=True,
    )


def _segmented(label: str, options: List[str], default: str, key: str) -> str:
    if hasattr(st, "segmented_control"):
        return st.segmented_control(label, options=options, default=default, key=key)
    return st.radio(label, options=options, horizontal=True, index=options.index(default), key=key)


def _save_uploaded_file(uploaded_file: Any) -> Path:
    upload_dir = Path(CONFIG.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    destination = upload_dir / uploaded_file.name
    with open(destination, "wb") as handle:
        handle.write(uploaded_file.getbuffer())
    return destination


def _initialize_state() -> None:
    if "controller" not in st.session_state:
        st.session_state.controller = EditableDocumentController(title=DEFAULT_TITLE)
    st.session_state.setdefault("doc_editor", st.session_state.controller.text)
    st.session_state.setdefault("records", [])
    st.session_state.setdefault("source_file", None)
    st.session_state.setdefault("system_prompt", load_system_prompt())
    st.session_state.setdefault("export_outcome", None)


def _controller() -> EditableDocumentController:
    return st.session_state.controller


# Callbacks run before the rerun, so they may write widget state.

def _on_editor_change() -> None:
    _controller().set_text(st.session_state.doc_editor)


def _sync_editor() -> None:
    st.session_state.doc_editor = _controller().text


def _on_find_change() -> None:
    _controller().find(st.session_state.find_needle)


def _on_replace_current() -> None:
    _controller().replace_current(st.session_state.replace_text)
    _sync_editor()


def _on_replace_all() -> None:
    _controller().replace_all(st.session_state.replace_text)
    _sync_editor()


def _on_kind_change(toggle: TableChartToggle, key: str) -> None:
    toggle.set_chart_kind(st.session_state[key])


def _on_label_change(toggle: TableChartToggle, key: str) -> None:
    toggle.set_label_column(st.session_state[key])


def _on_values_change(toggle: TableChartToggle, key: str) -> None:
    selected = st.session_state[key]
    for column in list(toggle.value_columns):
        if column not in selected:
            toggle.set_value_column(column, False)
    for column in selected:
        toggle.set_value_column(column, True)


def _export(fmt: str) -> None:
    st.session_state.export_outcome = _controller().export(fmt)


def _render_toggle(toggle: TableChartToggle) -> None:
    prefix = f"toggle_{id(toggle)}"
    table = toggle.table
    showing_chart = toggle.mode == ViewMode.CHART

    st.button(
        "Show Table" if showing_chart else "Show Chart",
        key=f"{prefix}_switch",
        on_click=toggle.toggle,
    )

    if showing_chart:
        kinds = [kind.value for kind in ChartKind]
        others = [header for header in table.headers if header != toggle.label_column]
        col_kind, col_label, col_values = st.columns([2, 2, 3])
        with col_kind:
            st.selectbox(
                "Chart type",
                kinds,
                index=kinds.index(toggle.chart_kind.value),
                format_func=lambda value: ChartKind(value).label,
                key=f"{prefix}_kind",
                on_change=_on_kind_change,
                args=(toggle, f"{prefix}_kind"),
            )
        with col_label:
            st.selectbox(
                "Label column",
                table.headers,
                index=table.headers.index(toggle.label_column) if toggle.label_column in table.headers else 0,
                key=f"{prefix}_label",
                on_change=_on_label_change,
                args=(toggle, f"{prefix}_label"),
            )
        with col_values:
            st.multiselect(
                "Value columns",
                others,
                default=[column for column in toggle.value_columns if column in others],
                key=f"{prefix}_values",
                on_change=_on_values_change,
                args=(toggle, f"{prefix}_values"),
            )
        st.plotly_chart(toggle.plotly_figure(), use_container_width=True, key=f"{prefix}_chart")
    else:
        st.markdown(table.html, unsafe_allow_html=True)

    st.markdown(f'<div class="figure-caption">{toggle.caption}</div>', unsafe_allow_html=True)


def _render_preview(controller: EditableDocumentController) -> None:
    rendered = controller.rendered or controller.render()
    for piece in rendered.fragments():
        if isinstance(piece, int):
            toggle = controller.toggle_for(piece)
            if toggle is not None:
                _render_toggle(toggle)
        elif piece.strip():
            st.markdown(piece, unsafe_allow_html=True)


def _render_find_replace(controller: EditableDocumentController) -> None:
    with st.expander("Find & Replace", expanded=False):
        col_find, col_replace = st.columns(2)
        with col_find:
            st.text_input("Find", key="find_needle", on_change=_on_find_change)
        with col_replace:
            st.text_input("Replace with", key="replace_text")

        col_prev, col_next, col_one, col_all, col_status = st.columns([1, 1, 1, 1, 2])
        with col_prev:
            st.button("Previous", on_click=controller.previous_match, use_container_width=True)
        with col_next:
            st.button("Next", on_click=controller.next_match, use_container_width=True)
        with col_one:
            st.button("Replace", on_click=_on_replace_current, use_container_width=True)
        with col_all:
            st.button("Replace All", on_click=_on_replace_all, use_container_width=True)
        with col_status:
            st.caption(controller.find_session.status)

        span = controller.current_match()
        if span:
            start, end = span
            before = controller.text[max(0, start - 40):start]
            after = controller.text[end:end + 40]
            st.code(f"…{before}[{controller.text[start:end]}]{after}…", language=None)


_inject_styles()
_initialize_state()

with st.sidebar:
    st.markdown("## Model")
    llm_backend = st.selectbox(
        "LLM Backend",
        BACKEND_OPTIONS,
        index=BACKEND_OPTIONS.index(llm.backend.value),
    )
    selected_backend = LLMBackend(llm_backend)
    llm_model = st.text_input("Model", value=LLMInterface.DEFAULT_MODELS[selected_backend])
    llm_base_url = st.text_input("Base URL", value=LLMInterface.DEFAULT_BASE_URLS[selected_backend])
    llm_api_key = st.text_input("API key", type="password", help="Needed for OpenAI, Gemini, Anthropic or OpenRouter")
    llm_settings = {
        "backend": llm_backend,
        "model_name": llm_model.strip(),
        "api_key": llm_api_key.strip(),
        "base_url": llm_base_url.strip(),
    }

    if st.button("Check LLM Connection", use_container_width=True):
        llm.apply_runtime_settings(dict(llm_settings, timeout=20))
        if llm.health_check():
            st.success(f"LLM reachable ({llm.backend.value}/{llm.model_name})")
        else:
            st.error(f"LLM check failed: {llm.last_error or 'No response'}")

    with st.expander("System prompt", expanded=False):
        st.text_area("Instructions sent with the data", key="system_prompt", height=200)

    history = MEMORY.get_history()
    if history:
        st.markdown("### Generation history")
        st.dataframe(
            pd.DataFrame(history)[["run_id", "status", "row_count", "model", "output_chars"]],
            use_container_width=True,
            hide_index=True,
        )

controller = _controller()

st.title("Results Writer")
st.caption("Turn survey data into an editable Results chapter with charts, then export it.")

uploaded = st.file_uploader("Survey data", type=CONFIG.file_parsing.supported_formats)
if uploaded is not None and uploaded.name != st.session_state.source_file:
    saved_path = _save_uploaded_file(uploaded)
    ingest = IngestionAgent().execute({"file_path": str(saved_path)})
    if ingest.success:
        st.session_state.records = ingest.data["records"]
        st.session_state.source_file = uploaded.name
    else:
        st.error(f"Could not read {uploaded.name}: {ingest.error}")

if st.session_state.records:
    with st.expander(f"Data preview ({len(st.session_state.records)} rows sent to the model)", expanded=False):
        st.dataframe(pd.DataFrame(st.session_state.records), use_container_width=True)

if st.button("Generate Results", type="primary", disabled=not st.session_state.records):
    with st.spinner("Generating Results chapter..."):
        result = CoordinatorAgent().execute(
            {
                "records": st.session_state.records,
                "system_prompt": st.session_state.system_prompt,
                "model": llm_settings["model_name"],
                "llm_settings": llm_settings,
            }
        )
    if result.success and controller.apply_generation(result.data["markdown"]):
        _sync_editor()
        st.session_state.export_outcome = None
        st.success(f"Generated {len(result.data['markdown'])} characters from {result.data['row_count']} rows")
    else:
        st.error(f"Generation failed: {result.error or 'empty response'}. Your current document was kept.")

controller.title = st.text_input("Document title", value=controller.title)

mode = _segmented("Mode", ["Edit", "Preview"], "Preview" if controller.mode == "preview" else "Edit", key="mode_control")
if mode and mode.lower() != controller.mode:
    controller.set_mode(mode.lower())

_render_find_replace(controller)

if controller.mode == "edit":
    st.text_area("Markdown", key="doc_editor", height=600, on_change=_on_editor_change)
else:
    _render_preview(controller)

st.divider()
col_docx, col_pdf, col_download = st.columns([1, 1, 3])
nothing_to_export = controller.text.strip() == ""
with col_docx:
    st.button("Export DOCX", on_click=_export, args=("docx",), disabled=nothing_to_export, use_container_width=True)
with col_pdf:
    st.button("Export PDF", on_click=_export, args=("pdf",), disabled=nothing_to_export, use_container_width=True)

outcome = st.session_state.export_outcome
with col_download:
    if outcome is not None and outcome.success:
        st.download_button(
            f"⬇ Download {outcome.filename}",
            data=outcome.data,
            file_name=outcome.filename,
            mime=EXPORT_MIME[outcome.filename.rsplit(".", 1)[-1]],
        )
    elif outcome is not None:
        st.error(outcome.error)

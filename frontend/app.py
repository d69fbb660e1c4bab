import streamlit as st

from abap_analyzer.client import AnalysisState, AnalyzerController
from abap_analyzer.intake import format_size_kb
from abap_analyzer.models import AVAILABLE_AGENTS, OutputFormat, UploadedFile

st.title("ABAP Code Analyzer")
st.caption("Analyze ABAP code with AI-powered insights")

if "controller" not in st.session_state:
    controller = AnalyzerController()
    controller.load_config()
    st.session_state.controller = controller
controller: AnalyzerController = st.session_state.controller

with st.sidebar:
    st.subheader("Configuration")
    if controller.config_loaded and controller.settings.api_key:
        st.success("Environment Configuration Loaded")
    else:
        st.warning("Waiting for Configuration...")
    st.write(f"**API Provider:** {controller.settings.provider}")
    st.write(f"**Model:** {controller.settings.model}")
    st.write(f"**API Key:** {controller.masked_api_key()}")
    if controller.config_error:
        st.error(f"Error: {controller.config_error}")

    formats = [fmt.value for fmt in OutputFormat]
    output_format = st.selectbox(
        "Output Format",
        formats,
        index=formats.index(controller.settings.output_format.value),
    )
    controller.set_output_format(output_format)

    st.subheader("Analysis Agents")
    for agent in AVAILABLE_AGENTS:
        checked = st.checkbox(
            agent.label,
            value=agent.id in controller.settings.agents,
            help=agent.description,
            key=f"agent-{agent.id}",
        )
        if checked != (agent.id in controller.settings.agents):
            controller.toggle_agent(agent.id)

st.subheader("Upload ABAP Files")
uploads = st.file_uploader(
    "Select ABAP files",
    type=["abap"],
    accept_multiple_files=True,
    key="uploads",
)
selected = [UploadedFile.from_bytes(upload.name, upload.getvalue()) for upload in uploads or []]
current = [(uploaded.name, uploaded.size) for uploaded in controller.files]
if [(uploaded.name, uploaded.size) for uploaded in selected] != current:
    controller.clear_files()
    if selected:
        controller.add_files(selected)

if controller.files:
    st.write(f"Selected Files ({len(controller.files)})")
    for uploaded in controller.files:
        st.write(f"- {uploaded.name} ({format_size_kb(uploaded.size)})")

missing = controller.missing_requirements()
if missing:
    st.info("Before you can analyze:\n" + "\n".join(f"- {item}" for item in missing))

if st.button("Run ABAP Analysis", disabled=not controller.can_analyze):
    with st.spinner("Analyzing Files..."):
        controller.run_analysis()

if controller.error:
    st.error(controller.error)

if controller.state == AnalysisState.SUCCESS and controller.results is not None:
    st.subheader("Analysis Results")
    if controller.results.get("format") == OutputFormat.MARKDOWN.value:
        st.markdown(controller.results.get("content", ""))
    else:
        st.json(controller.results)

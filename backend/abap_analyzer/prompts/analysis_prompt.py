"""Prompt templates for the ABAP analyzer."""

AGENT_INSTRUCTIONS = {
    "functionality": (
        "Describe the business purpose of the program: which business process it "
        "supports, its inputs and outputs, selection screens, reports, BAPIs and "
        "function modules it exposes or consumes."
    ),
    "technical": (
        "Examine the technical implementation: database access (SELECT patterns, "
        "FOR ALL ENTRIES, joins, buffering), internal table handling, modularisation "
        "(FORM routines, methods, function modules), obsolete statements and "
        "performance hot spots."
    ),
    "logic": (
        "Extract the core logic: control flow, key algorithms, validation and "
        "calculation rules, and the conditions under which each branch runs."
    ),
    "context": (
        "Map the relationships between code segments and between the uploaded "
        "files: includes, shared data, call chains, and dependencies on DDIC "
        "objects or other repository objects."
    ),
    "documentation": (
        "Assess documentation quality: header comments, inline comments, naming "
        "conventions, and which parts of the code would be hard to maintain "
        "without further explanation."
    ),
    "security": (
        "Identify security issues: missing AUTHORITY-CHECK statements, dynamic SQL "
        "or dynamic calls built from user input, hard-coded credentials, unsafe "
        "file access and client handling, and deviations from SAP secure coding "
        "guidelines."
    ),
}

ABAP_ANALYSIS_PROMPT = """You are a senior SAP ABAP architect reviewing source code for a modernisation project.
Analyze the ABAP files below and report your findings.

ANALYSIS AGENTS
Apply each of the following lenses and report on every one of them:
{agents}

FILES ({file_count})
{files}

OUTPUT
{output_instructions}"""

JSON_OUTPUT_INSTRUCTIONS = """Respond with ONLY a valid JSON object, no markdown fences and no text before or after it.
Use exactly this shape:
{{
  "summary": "Overall assessment of the uploaded code.",
  "files": [
    {{
      "file_name": "name of the file",
      "overview": "What this file does.",
      "agents": {{
{agent_schema}
      }}
    }}
  ],
  "recommendations": ["Concrete, prioritised recommendation."]
}}
Each agent entry has the keys "findings" (array of strings) and "recommendations" (array of strings).
Include one object in "files" for every uploaded file."""

MARKDOWN_OUTPUT_INSTRUCTIONS = """Respond in GitHub flavoured Markdown.
Start with a "# Summary" section, then add one "## <file name>" section per file with a
"### <Agent>" subsection for every agent listed above, and finish with a "# Recommendations" list.
Do not wrap the whole answer in a code block."""

FILE_BLOCK_TEMPLATE = """--- FILE: {name} ({size} bytes){truncated}
{source}
--- END FILE: {name}"""

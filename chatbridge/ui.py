# Run from project root: streamlit run chatbridge/ui.py
# UI talks to backend API (POST /api/invoke-agent). Chat history is kept locally in SQLite by session id.

import os
import sys
import uuid
from pathlib import Path

# Ensure project root is on path (Streamlit may run with cwd != project root)
_root_from_file = Path(__file__).resolve().parent.parent
_cwd = os.getcwd()
for _root in (_root_from_file, _cwd):
    _root = str(_root)
    if _root not in sys.path:
        sys.path.insert(0, _root)

import requests
import streamlit as st

from chatbridge.core.config import API_BASE
from chatbridge.core.history_store import HistoryStore

history = HistoryStore()

st.title("Ask me!")


def _new_session(session_id: str | None = None) -> None:
    # Session id lives in the URL (?session=...) so a reload resumes the same history
    st.session_state.chat_session_id = session_id or uuid.uuid4().hex[:8]
    st.query_params["session"] = st.session_state.chat_session_id
    st.session_state.messages = []
    st.session_state.last_trace = ""


def _ask(question: str, end_session: bool = False) -> tuple[str, str]:
    """POST to the bridge; returns (answer, trace). Errors come back as the answer text."""
    try:
        r = requests.post(
            f"{API_BASE}/api/invoke-agent",
            json={
                "sessionId": st.session_state.chat_session_id,
                "question": question,
                "endSession": end_session,
            },
            timeout=90,
        )
    except requests.RequestException as e:
        return f"Connection failed: {e}", ""
    try:
        data = r.json()
    except ValueError:
        data = {}
    if not r.ok:
        return f"Error: {r.status_code} — {data.get('error') or r.text[:200]}", ""
    return data.get("trace_data", ""), data.get("response", "")


# Session: one ID per conversation; history loaded in full on first render
if "chat_session_id" not in st.session_state:
    _new_session(st.query_params.get("session"))
    st.session_state.messages = history.get_history(st.session_state.chat_session_id)

col_new, col_end, col_clear = st.columns(3)
if col_new.button("New chat", key="new_chat"):
    _new_session()
    st.rerun()
if col_end.button("End session", key="end_session", disabled=not st.session_state.messages):
    with st.spinner("Ending session..."):
        answer, trace = _ask("Goodbye", end_session=True)
    history.append_message(st.session_state.chat_session_id, "user", "Goodbye")
    history.append_message(st.session_state.chat_session_id, "assistant", answer)
    _new_session()
    st.rerun()
if col_clear.button("Clear history", key="clear_history", disabled=not st.session_state.messages):
    history.clear_history(st.session_state.chat_session_id)
    st.session_state.messages = []
    st.session_state.last_trace = ""
    st.rerun()

for msg in st.session_state.messages:
    with st.chat_message(msg["role"]):
        st.markdown(msg["content"])

if st.session_state.get("last_trace"):
    with st.expander("Agent trace (last answer)"):
        st.text(st.session_state.last_trace)

if prompt := st.chat_input("Type your message..."):
    session_id = st.session_state.chat_session_id
    st.session_state.messages.append({"role": "user", "content": prompt})
    history.append_message(session_id, "user", prompt)
    with st.chat_message("user"):
        st.markdown(prompt)
    with st.chat_message("assistant"):
        with st.spinner("Thinking..."):
            answer, trace = _ask(prompt)
        st.markdown(answer or "No answer.")
    st.session_state.messages.append({"role": "assistant", "content": answer or "No answer."})
    st.session_state.last_trace = trace
    history.append_message(session_id, "assistant", answer or "No answer.")
    st.rerun()

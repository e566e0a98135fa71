from __future__ import annotations

import asyncio
from dataclasses import dataclass

from fastapi import Body, FastAPI, HTTPException
from fastapi.responses import HTMLResponse, JSONResponse

from .ai import (
    AI_UNAVAILABLE_MESSAGE,
    DEFAULT_TEXTGEN_MODEL,
    DEFAULT_TEXTGEN_URL,
    MISSING_ISSUE_MESSAGE,
    TextGenClient,
    TextGenError,
    TextGenUnavailableError,
    build_prompt,
    report_json_for_prompt,
)
from .bundle import Bundle, validate_bundle
from .codec import decode_bundle, encode_bundle, measure_token
from .collect import LogSink, collect_info, make_sample_logs
from .compression import DEFAULT_ADAPTER, CompressionAdapter, _debug_log
from .errors import DecodeError, NonSerializableError
from .htmlview import document_to_html, report_to_html
from .pathindex import PathIndex, build_path_index
from .render import Document, render_annotated_text
from .web_assets import TROUBLECODE_FAVICON_URL

DECODE_FAILED_MESSAGE = "Unable to decode this TroubleCode."
MISSING_CODE_MESSAGE = "Paste a TroubleCode to continue."


@dataclass(slots=True)
class WebConfig:
    textgen_url: str = DEFAULT_TEXTGEN_URL
    textgen_model: str | None = DEFAULT_TEXTGEN_MODEL
    textgen_key: str | None = None
    textgen_timeout: float = 60.0
    adapter: CompressionAdapter = DEFAULT_ADAPTER


INDEX_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>TroubleCode Viewer</title>
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <link rel="icon" href="__TC_FAVICON__">
  <style>
    :root {
      color-scheme: dark;
      font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", sans-serif;
      --bg: #0b1020;
      --panel: #141a2e;
      --panel-alt: #1c2340;
      --text: #f1f5f9;
      --muted: #94a3b8;
      --accent: #fbbf24;
      --danger: #f87171;
      --success: #4ade80;
      --radius: 14px;
    }
    body { margin: 0; background: var(--bg); color: var(--text); }
    main { max-width: 960px; margin: 0 auto; padding: 1.5rem; display: grid; gap: 1.25rem; }
    section { background: var(--panel); border-radius: var(--radius); padding: 1rem 1.25rem; }
    .hidden { display: none !important; }
    textarea { width: 100%; box-sizing: border-box; min-height: 5rem; background: var(--panel-alt);
      color: var(--text); border: 1px solid #334155; border-radius: 10px; padding: .6rem; font-family: ui-monospace, monospace; }
    button { background: var(--accent); color: #111827; border: 0; border-radius: 999px; padding: .45rem 1rem;
      font-weight: 600; cursor: pointer; }
    button:disabled { opacity: .5; cursor: default; }
    .meta { color: var(--muted); font-size: .9rem; min-height: 1.2rem; }
    .meta.warning, .meta.error { color: var(--danger); }
    .meta.success { color: var(--success); }
    .report__group { border-top: 1px solid #273049; padding: .35rem 0; }
    .report__group > summary { cursor: pointer; font-weight: 600; }
    .report__group--nested { margin-left: 1rem; }
    .report__item { display: grid; grid-template-columns: 12rem 1fr; gap: .75rem; padding: .2rem .4rem;
      border-radius: 6px; transition: background .3s; }
    .report__item > span:first-child { color: var(--muted); }
    .report__item--highlight { background: #854d0e; }
    .report__multiline, .report__raw, .ai-code-block { white-space: pre-wrap; background: var(--panel-alt);
      padding: .5rem; border-radius: 8px; margin: 0; overflow-x: auto; }
    .ref-chip { background: var(--panel-alt); color: var(--accent); border: 1px solid var(--accent);
      padding: .05rem .5rem; font-family: ui-monospace, monospace; font-size: .85rem; font-weight: 500; }
    .ai-output a { color: var(--accent); }
  </style>
</head>
<body>
  <main>
    <section>
      <h1>TroubleCode</h1>
      <textarea id="code-input" placeholder="Paste a TroubleCode"></textarea>
      <p>
        <button id="decode-btn" type="button">Decode</button>
        <button id="sample-btn" type="button">Create sample</button>
      </p>
      <div id="meta" class="meta"></div>
    </section>
    <section id="report-section" class="hidden">
      <h2>Report</h2>
      <div id="report-meta" class="meta"></div>
      <div id="report"></div>
    </section>
    <section id="ai-section" class="hidden">
      <h2>Analysis</h2>
      <button id="analyze-btn" type="button">Analyze</button>
      <div id="ai-output" class="ai-output hidden"></div>
    </section>
    <section id="troubleshoot-section" class="hidden">
      <h2>Troubleshoot</h2>
      <textarea id="troubleshoot-input" placeholder="Describe the issue"></textarea>
      <p><button id="troubleshoot-btn" type="button">Troubleshoot</button></p>
      <div id="troubleshoot-output" class="ai-output hidden"></div>
    </section>
  </main>
  <script>
    const codeInput = document.getElementById('code-input');
    const decodeBtn = document.getElementById('decode-btn');
    const sampleBtn = document.getElementById('sample-btn');
    const meta = document.getElementById('meta');
    const reportSection = document.getElementById('report-section');
    const reportMeta = document.getElementById('report-meta');
    const report = document.getElementById('report');
    const aiSection = document.getElementById('ai-section');
    const analyzeBtn = document.getElementById('analyze-btn');
    const aiOutput = document.getElementById('ai-output');
    const troubleshootSection = document.getElementById('troubleshoot-section');
    const troubleshootInput = document.getElementById('troubleshoot-input');
    const troubleshootBtn = document.getElementById('troubleshoot-btn');
    const troubleshootOutput = document.getElementById('troubleshoot-output');
    let currentCode = '';

    function setMeta(text, tone = '') {
      meta.textContent = text;
      meta.className = tone ? `meta ${tone}` : 'meta';
    }

    function showSection(section, visible) {
      section.classList.toggle('hidden', !visible);
    }

    async function postJSON(url, payload) {
      const res = await fetch(url, {
        method: 'POST',
        cache: 'no-store',
        headers: { 'Content-Type': 'application/json' },
        body: JSON.stringify(payload),
      });
      const data = await res.json().catch(() => ({}));
      if (!res.ok) {
        throw new Error(data.detail || `HTTP ${res.status}`);
      }
      return data;
    }

    function focusReportPath(path) {
      if (!path) return;
      const safePath = window.CSS?.escape ? CSS.escape(path) : path.replace(/"/g, '\\\\"');
      const target = report.querySelector(`[data-path="${safePath}"]`);
      if (!target) return;
      let parent = target.parentElement;
      while (parent && parent !== report) {
        if (parent.tagName === 'DETAILS') parent.open = true;
        parent = parent.parentElement;
      }
      if (target.tagName === 'DETAILS') target.open = true;
      target.classList.add('report__item--highlight');
      target.scrollIntoView({ behavior: 'smooth', block: 'center' });
      window.setTimeout(() => target.classList.remove('report__item--highlight'), 1400);
    }

    document.addEventListener('click', (event) => {
      const chip = event.target.closest('.ref-chip');
      if (chip) focusReportPath(chip.dataset.ref);
    });

    function setOutput(el, html) {
      el.innerHTML = html;
      showSection(el, true);
    }

    async function handleDecode() {
      const code = codeInput.value.trim();
      if (!code) {
        setMeta('Paste a TroubleCode to continue.', 'warning');
        return;
      }
      decodeBtn.disabled = true;
      setMeta('Decoding…', 'loading');
      try {
        const data = await postJSON('/api/decode', { code });
        currentCode = code;
        report.innerHTML = data.html;
        reportMeta.textContent = `Decoded ${data.sections} sections`;
        showSection(reportSection, true);
        showSection(aiSection, true);
        showSection(troubleshootSection, true);
        showSection(aiOutput, false);
        showSection(troubleshootOutput, false);
        setMeta('Decoded successfully.', 'success');
      } catch (err) {
        currentCode = '';
        showSection(reportSection, false);
        showSection(aiSection, false);
        showSection(troubleshootSection, false);
        setMeta(err.message || 'Unable to decode this TroubleCode.', 'error');
      } finally {
        decodeBtn.disabled = false;
      }
    }

    async function handleSample() {
      sampleBtn.disabled = true;
      try {
        const data = await postJSON('/api/encode', { sampleLogs: true, userError: 'Sample issue' });
        codeInput.value = data.code;
        history.replaceState(null, '', data.url);
        await handleDecode();
      } catch (err) {
        setMeta(err.message || String(err), 'error');
      } finally {
        sampleBtn.disabled = false;
      }
    }

    async function handleAnalyze(mode, button, output, issue) {
      if (!currentCode) return;
      button.disabled = true;
      showSection(output, false);
      try {
        const data = await postJSON('/api/analyze', { code: currentCode, mode, issue });
        setOutput(output, data.html);
      } catch (err) {
        setOutput(output, '');
        output.textContent = 'Unable to reach the AI service right now.';
      } finally {
        button.disabled = false;
      }
    }

    decodeBtn.addEventListener('click', handleDecode);
    sampleBtn.addEventListener('click', handleSample);
    analyzeBtn.addEventListener('click', () => handleAnalyze('triage', analyzeBtn, aiOutput));
    troubleshootBtn.addEventListener('click', () =>
      handleAnalyze('troubleshoot', troubleshootBtn, troubleshootOutput, troubleshootInput.value.trim()));

    const initialCode = new URLSearchParams(window.location.search).get('code');
    if (initialCode) {
      codeInput.value = initialCode;
      handleDecode();
    }
  </script>
</body>
</html>
"""


def _require_payload(payload: object) -> dict[str, object]:
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid payload.")
    return payload


def _document_payload(document: Document, index: PathIndex | None) -> dict[str, object]:
    references = [ref.path for ref in document.references()]
    unresolved = [path for path in references if index is None or index.lookup(path) is None]
    return {
        "html": document_to_html(document),
        "references": references,
        "unresolved": unresolved,
    }


def _render_payload(text: str, index: PathIndex | None) -> dict[str, object]:
    return _document_payload(render_annotated_text(text, index), index)


def create_app(config: WebConfig | None = None) -> FastAPI:
    config = config or WebConfig()
    app = FastAPI(title="TroubleCode")
    app.state.config = config
    app.state.textgen = TextGenClient(
        base_url=config.textgen_url,
        model=config.textgen_model,
        api_key=config.textgen_key,
        timeout=config.textgen_timeout,
    )
    adapter = config.adapter

    async def _decode_code(value: object) -> Bundle:
        if not isinstance(value, str) or not value.strip():
            raise HTTPException(status_code=400, detail=MISSING_CODE_MESSAGE)
        try:
            return await decode_bundle(value, adapter=adapter)
        except DecodeError as exc:
            _debug_log(f"decode failed: {exc}")
            raise HTTPException(status_code=400, detail=DECODE_FAILED_MESSAGE) from exc

    async def _bundle_from_payload(payload: dict[str, object]) -> Bundle:
        if "bundle" in payload:
            bundle = payload["bundle"]
            try:
                validate_bundle(bundle)
            except NonSerializableError as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc
            return bundle  # type: ignore[return-value]
        return await _decode_code(payload.get("code"))

    @app.get("/", response_class=HTMLResponse)
    def index() -> HTMLResponse:
        return HTMLResponse(INDEX_HTML.replace("__TC_FAVICON__", TROUBLECODE_FAVICON_URL))

    @app.post("/api/decode")
    async def api_decode(payload: dict[str, object] = Body(...)) -> JSONResponse:
        payload = _require_payload(payload)
        code = payload.get("code")
        bundle = await _decode_code(code)
        index = build_path_index(bundle)
        sections = len(bundle) if isinstance(bundle, dict) else 1
        stats = await measure_token(str(code), adapter=adapter)
        return JSONResponse(
            {
                "bundle": bundle,
                "html": report_to_html(bundle, index),
                "sections": sections,
                "paths": index.paths(),
                "conflicts": list(index.conflicts),
                "stats": {
                    "tokenLength": stats.token_length,
                    "payloadBytes": stats.payload_bytes,
                    "jsonBytes": stats.json_bytes,
                    "compressed": stats.compressed,
                },
            }
        )

    @app.post("/api/encode")
    async def api_encode(payload: dict[str, object] = Body(...)) -> JSONResponse:
        payload = _require_payload(payload)
        if "bundle" in payload:
            bundle = payload["bundle"]
        else:
            user_error = payload.get("userError") or ""
            if not isinstance(user_error, str):
                raise HTTPException(status_code=400, detail="userError must be a string.")
            sink = LogSink()
            if payload.get("sampleLogs"):
                make_sample_logs(sink)
            bundle = collect_info(user_error, sink=sink)
        try:
            code = await encode_bundle(bundle, adapter=adapter)
        except NonSerializableError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return JSONResponse({"code": code, "url": f"/?code={code}", "length": len(code)})

    @app.post("/api/render")
    async def api_render(payload: dict[str, object] = Body(...)) -> JSONResponse:
        payload = _require_payload(payload)
        text = payload.get("text")
        if not isinstance(text, str):
            raise HTTPException(status_code=400, detail="text must be a string.")
        index: PathIndex | None = None
        if "bundle" in payload or payload.get("code"):
            index = build_path_index(await _bundle_from_payload(payload))
        body = await asyncio.to_thread(_render_payload, text, index)
        return JSONResponse(body)

    @app.post("/api/analyze")
    async def api_analyze(payload: dict[str, object] = Body(...)) -> JSONResponse:
        payload = _require_payload(payload)
        mode = payload.get("mode") or "triage"
        if mode not in ("triage", "troubleshoot"):
            raise HTTPException(status_code=400, detail="mode must be 'triage' or 'troubleshoot'.")
        bundle = await _bundle_from_payload(payload)
        index = build_path_index(bundle)
        issue = payload.get("issue")
        ok = True
        if mode == "troubleshoot" and not (isinstance(issue, str) and issue.strip()):
            text = MISSING_ISSUE_MESSAGE
            ok = False
        else:
            prompt = build_prompt(
                mode,  # type: ignore[arg-type]
                report_json_for_prompt(bundle),
                issue if isinstance(issue, str) else None,
            )
            try:
                text = await asyncio.to_thread(app.state.textgen.generate, prompt)
            except (TextGenError, TextGenUnavailableError) as exc:
                _debug_log(f"text generation failed: {exc}")
                text = AI_UNAVAILABLE_MESSAGE
                ok = False
        body = await asyncio.to_thread(_render_payload, text, index)
        body.update({"ok": ok, "text": text})
        return JSONResponse(body)

    return app

import json
import time

from flask import Flask, request, jsonify

from config import SUGGESTIONS, Settings
from errors import RefMonsterError
from gateway import ModelGateway
from log_setup import bind_request_context, clear_request_context, get_logger, setup_logging
from references import GENERATE_TERMS, SEARCH_AGGREGATE, SEARCH_IMAGES, run_task

settings = Settings.from_env()
setup_logging(settings.log_level, settings.log_json)
log = get_logger("refmonster.app")

app = Flask(__name__)

gateway = ModelGateway(settings)


def page_settings():
    return {
        "maxConcurrentLookups": settings.max_concurrent_lookups,
        "pauses": settings.pauses_ms,
        "suggestions": SUGGESTIONS,
    }


def handle_task(task):
    """Run one lookup for the current request and wrap it in the JSON envelope."""
    bind_request_context(task.name)
    start = time.time()
    try:
        body = run_task(task, request.get_json(silent=True), gateway)
        body["elapsed"] = round(time.time() - start, 1)
        log.info("request_completed", elapsed_ms=int((time.time() - start) * 1000))
        return jsonify(body)
    except RefMonsterError as e:
        log.error(
            "request_failed",
            error_type=type(e).__name__,
            error=str(e),
            elapsed_ms=int((time.time() - start) * 1000),
        )
        return jsonify({"error": str(e)}), e.status_code
    except Exception as e:
        log.exception("request_crashed", elapsed_ms=int((time.time() - start) * 1000))
        return jsonify({"error": str(e) or "Internal server error"}), 500
    finally:
        clear_request_context()


@app.route("/")
def index():
    return HTML_PAGE.replace("/*__SETTINGS__*/", json.dumps(page_settings()))


@app.route("/api/generate-terms", methods=["POST"])
def generate_terms():
    """Expand an art reference query into 8-15 visual search terms."""
    return handle_task(GENERATE_TERMS)


@app.route("/api/search-images", methods=["POST"])
def search_images():
    """Find image URLs for a single search term with Google Search grounding."""
    return handle_task(SEARCH_IMAGES)


@app.route("/api/search", methods=["POST"])
def search():
    """Single round trip: terms and images together. The page itself does not call this."""
    return handle_task(SEARCH_AGGREGATE)


HTML_PAGE = r"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>RefMonster - AI Reference Search</title>
<meta name="description" content="Search for comprehensive references using AI">
<style>
  *, *::before, *::after { box-sizing: border-box; margin: 0; padding: 0; }

  body {
    font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
    background: #0f0f0f;
    color: #e0e0e0;
    min-height: 100vh;
    padding: 32px;
  }

  main { max-width: 1280px; margin: 0 auto; }

  h1 {
    font-size: 3rem;
    font-weight: 700;
    text-align: center;
    margin-bottom: 16px;
    background: linear-gradient(90deg, #60a5fa, #9333ea);
    -webkit-background-clip: text;
    background-clip: text;
    color: transparent;
  }

  .tagline { text-align: center; color: #9ca3af; margin-bottom: 32px; }

  form {
    display: flex;
    gap: 16px;
    max-width: 672px;
    margin: 0 auto 32px;
  }

  input[type="text"] {
    flex: 1;
    padding: 16px 24px;
    border-radius: 10px;
    background: #1a1a1a;
    border: 1px solid #2a2a2a;
    color: #fff;
    font-size: 1.1rem;
    outline: none;
    transition: border-color 0.2s;
  }
  input[type="text"]:focus { border-color: #3b82f6; }

  .search-btn {
    padding: 16px 32px;
    border: none;
    border-radius: 10px;
    background: linear-gradient(90deg, #3b82f6, #9333ea);
    color: #fff;
    font-size: 1.1rem;
    font-weight: 600;
    cursor: pointer;
    transition: opacity 0.2s;
  }
  .search-btn:disabled { opacity: 0.5; cursor: not-allowed; }

  .suggestions { max-width: 672px; margin: 0 auto 24px; text-align: center; }
  .suggestions p { color: #9ca3af; font-size: 0.85rem; margin-bottom: 12px; }
  .suggestions .chips { display: flex; flex-wrap: wrap; gap: 8px; justify-content: center; }
  .suggestions button {
    padding: 8px 16px;
    background: #1a1a1a;
    border: 1px solid #2a2a2a;
    border-radius: 8px;
    color: #d1d5db;
    font-size: 0.85rem;
    cursor: pointer;
    transition: all 0.2s;
  }
  .suggestions button:hover { background: #262626; color: #fff; border-color: #3a3a3a; }

  .checklist {
    max-width: 672px;
    margin: 0 auto;
    background: rgba(31, 41, 55, 0.5);
    border: 1px solid #374151;
    border-radius: 10px;
    padding: 24px;
    display: flex;
    flex-direction: column;
    gap: 12px;
  }
  .check-item { display: flex; align-items: center; gap: 12px; font-size: 0.9rem; }
  .check-icon { width: 24px; height: 24px; border-radius: 50%; flex-shrink: 0; }
  .check-item.pending .check-icon { border: 2px solid #4b5563; }
  .check-item.pending .check-label { color: #9ca3af; }
  .check-item.active .check-icon {
    border: 2px solid #3b82f6;
    border-top-color: transparent;
    animation: spin 0.8s linear infinite;
  }
  .check-item.active .check-label { color: #60a5fa; font-weight: 500; }
  .check-item.completed .check-icon {
    background: #22c55e;
    color: #fff;
    display: flex;
    align-items: center;
    justify-content: center;
    font-size: 0.8rem;
  }
  .check-item.completed .check-label { color: #4ade80; text-decoration: line-through; }

  .collage { margin-top: 48px; }
  .collage h2 { font-size: 1.5rem; font-weight: 600; text-align: center; margin-bottom: 24px; }
  .collage .empty { text-align: center; color: #9ca3af; }

  .grid {
    display: grid;
    grid-template-columns: repeat(auto-fill, minmax(200px, 1fr));
    gap: 16px;
  }

  .tile {
    position: relative;
    overflow: hidden;
    border-radius: 10px;
    background: #1f2937;
    border: 1px solid #374151;
    transition: border-color 0.2s;
    animation: fade-in 0.3s ease both;
  }
  .tile:hover { border-color: #3b82f6; }
  .tile.square { aspect-ratio: 1 / 1; }
  .tile img { display: block; width: 100%; height: auto; object-fit: cover; }
  .tile.square img { height: 100%; }

  .tile .caption {
    position: absolute;
    left: 0; right: 0; bottom: 0;
    padding: 12px;
    background: linear-gradient(to top, rgba(0, 0, 0, 0.85), transparent);
  }
  .tile .caption p { color: #fff; font-size: 0.85rem; font-weight: 500; white-space: nowrap; overflow: hidden; text-overflow: ellipsis; }
  .tile .caption .more { color: #d1d5db; font-size: 0.75rem; font-weight: 400; margin-top: 4px; }

  .placeholder {
    display: flex;
    flex-direction: column;
    align-items: center;
    justify-content: center;
    height: 100%;
    padding: 16px;
    text-align: center;
    gap: 12px;
  }
  .placeholder .spinner {
    width: 48px; height: 48px;
    border: 4px solid #3b82f6;
    border-top-color: transparent;
    border-radius: 50%;
    animation: spin 0.8s linear infinite;
  }
  .placeholder .term { color: #fff; font-size: 0.85rem; font-weight: 500; }
  .placeholder .hint { color: #9ca3af; font-size: 0.75rem; }

  @keyframes spin { to { transform: rotate(360deg); } }
  @keyframes fade-in { from { opacity: 0; transform: translateY(6px); } to { opacity: 1; transform: none; } }
</style>
</head>
<body>
<main>
  <h1>RefMonster</h1>
  <p class="tagline">AI-powered comprehensive reference search</p>

  <form id="searchForm">
    <input type="text" id="query" placeholder="mistborn era 2" autocomplete="off">
    <button type="submit" class="search-btn" id="searchBtn" disabled>Search</button>
  </form>

  <div class="suggestions" id="suggestions">
    <p>Quick suggestions:</p>
    <div class="chips" id="suggestionChips"></div>
  </div>

  <div class="checklist" id="checklist" style="display:none"></div>

  <section class="collage" id="collage"></section>
</main>

<script>
  const SETTINGS = /*__SETTINGS__*/;

  const queryEl = document.getElementById('query');
  const formEl = document.getElementById('searchForm');
  const searchBtn = document.getElementById('searchBtn');
  const suggestionsEl = document.getElementById('suggestions');
  const chipsEl = document.getElementById('suggestionChips');
  const checklistEl = document.getElementById('checklist');
  const collageEl = document.getElementById('collage');

  const STAGES = [
    { id: '1', label: 'Analyzing query with Gemini' },
    { id: '2', label: 'Generating reference search terms' },
    { id: '3', label: 'Searching web for images (per term)' },
    { id: '4', label: 'Building reference collage' },
  ];

  // ── Search state ──
  let checklist = freshChecklist();
  let loading = false;
  let epoch = 0;
  let terms = [];
  let termImages = new Map();
  let results = [];
  let finished = false;
  const imageErrors = new Set();

  function freshChecklist() {
    return STAGES.map(s => ({ ...s, status: 'pending' }));
  }

  const sleep = ms => new Promise(resolve => setTimeout(resolve, ms));

  // ── API call helper ──
  async function postJson(url, body) {
    const res = await fetch(url, {
      method: 'POST',
      headers: { 'Content-Type': 'application/json' },
      body: JSON.stringify(body),
    });
    const data = await res.json().catch(() => ({}));
    if (!res.ok || data.error) throw new Error(data.error || 'HTTP ' + res.status);
    return data;
  }

  // Runs worker over items with at most `limit` calls in flight; output keeps item order.
  async function runPool(items, limit, worker) {
    const out = new Array(items.length).fill(null);
    let next = 0;
    async function lane() {
      while (next < items.length) {
        const i = next++;
        out[i] = await worker(items[i], i);
      }
    }
    const lanes = Math.max(1, Math.min(limit, items.length));
    await Promise.all(Array.from({ length: lanes }, lane));
    return out;
  }

  // ═══════════════════════════════════
  // Progress checklist
  // ═══════════════════════════════════
  function updateChecklist(id, status, label) {
    checklist = checklist.map(item =>
      item.id === id ? { ...item, status, ...(label ? { label } : {}) } : item
    );
    renderChecklist();
  }

  function renderChecklist() {
    checklistEl.innerHTML = '';
    checklist.forEach(item => {
      const row = document.createElement('div');
      row.className = 'check-item ' + item.status;
      const icon = document.createElement('div');
      icon.className = 'check-icon';
      if (item.status === 'completed') icon.textContent = '✓';
      const label = document.createElement('span');
      label.className = 'check-label';
      label.textContent = item.label;
      row.appendChild(icon);
      row.appendChild(label);
      checklistEl.appendChild(row);
    });
  }

  // ═══════════════════════════════════
  // Collage
  // ═══════════════════════════════════
  function imageTile(url, term, square) {
    const tile = document.createElement('div');
    tile.className = 'tile' + (square ? ' square' : '');
    const img = document.createElement('img');
    img.src = url;
    img.alt = term;
    img.loading = 'lazy';
    img.addEventListener('error', () => {
      imageErrors.add(url);
      renderCollage();
    });
    tile.appendChild(img);
    const caption = document.createElement('div');
    caption.className = 'caption';
    const name = document.createElement('p');
    name.textContent = term;
    caption.appendChild(name);
    tile.appendChild(caption);
    return { tile, caption };
  }

  function placeholderTile(term) {
    const tile = document.createElement('div');
    tile.className = 'tile square';
    const box = document.createElement('div');
    box.className = 'placeholder';
    box.innerHTML = '<div class="spinner"></div><p class="term"></p><p class="hint">Searching web...</p>';
    box.querySelector('.term').textContent = term;
    tile.appendChild(box);
    return tile;
  }

  function renderCollage() {
    collageEl.innerHTML = '';
    const heading = document.createElement('h2');
    const grid = document.createElement('div');
    grid.className = 'grid';

    if (loading && terms.length > 0) {
      heading.textContent = 'Search Terms (' + terms.length + ')';
      terms.forEach((termObj, index) => {
        const term = (termObj && termObj.term) || '';
        const images = (termImages.get(term) || []).filter(url => !imageErrors.has(url));
        let tile;
        if (images.length > 0) {
          const built = imageTile(images[0], term, true);
          tile = built.tile;
          if (images.length > 1) {
            const more = document.createElement('p');
            more.className = 'more';
            more.textContent = '+' + (images.length - 1) + ' more';
            built.caption.appendChild(more);
          }
        } else {
          tile = placeholderTile(term);
        }
        tile.style.animationDelay = (index * 50) + 'ms';
        grid.appendChild(tile);
      });
    } else if (results.length > 0) {
      const allImages = results.flatMap(result =>
        result.imageUrls.map(url => ({ url, term: result.term }))
      );
      heading.textContent = 'Reference Images (' + allImages.length + ')';
      allImages.forEach(({ url, term }, index) => {
        if (imageErrors.has(url)) return;
        const { tile } = imageTile(url, term, false);
        tile.style.animationDelay = (index * 30) + 'ms';
        grid.appendChild(tile);
      });
    } else if (finished) {
      const empty = document.createElement('p');
      empty.className = 'empty';
      empty.textContent = 'No reference images found.';
      collageEl.appendChild(empty);
      return;
    } else {
      return;
    }

    collageEl.appendChild(heading);
    collageEl.appendChild(grid);
  }

  // ═══════════════════════════════════
  // Search orchestration
  // ═══════════════════════════════════
  function setLoading(value) {
    loading = value;
    searchBtn.disabled = value || !queryEl.value.trim();
    searchBtn.textContent = value ? 'Searching...' : 'Search';
    suggestionsEl.style.display = value ? 'none' : '';
    checklistEl.style.display = value ? '' : 'none';
  }

  async function runSearch(query) {
    const myEpoch = ++epoch;
    const current = () => myEpoch === epoch;

    terms = [];
    results = [];
    termImages = new Map();
    finished = false;
    checklist = freshChecklist();
    setLoading(true);
    renderChecklist();
    renderCollage();

    try {
      updateChecklist('1', 'active');
      const data = await postJson('/api/generate-terms', { query });
      if (!current()) return;

      const generated = data.terms || [];
      updateChecklist('1', 'completed');
      updateChecklist('2', 'active');
      updateChecklist('2', 'completed', 'Generated ' + generated.length + ' search terms');
      terms = generated;
      renderCollage();

      await sleep(SETTINGS.pauses.terms);
      if (!current()) return;
      updateChecklist('3', 'active');

      const found = await runPool(generated, SETTINGS.maxConcurrentLookups, async termObj => {
        const term = termObj && termObj.term;
        if (!term || !current()) return null;
        try {
          const imageData = await postJson('/api/search-images', { term });
          const imageUrls = imageData.imageUrls || [];
          if (imageUrls.length === 0) return null;
          if (current()) {
            termImages.set(term, imageUrls);
            renderCollage();
          }
          return {
            term,
            description: termObj.description || '',
            imageUrls,
            sources: imageUrls,
          };
        } catch (e) {
          console.error('Error searching images for "' + term + '":', e);
          return null;
        }
      });
      if (!current()) return;

      const final = found.filter(r => r !== null);
      updateChecklist('3', 'completed', 'Found images for ' + final.length + ' terms');
      updateChecklist('4', 'active');
      await sleep(SETTINGS.pauses.collage);
      if (!current()) return;
      updateChecklist('4', 'completed');

      await sleep(SETTINGS.pauses.deliver);
      if (!current()) return;
      results = final;
      finished = true;
      setLoading(false);
      renderCollage();
    } catch (e) {
      if (!current()) return;
      console.error('Search error:', e);
      checklist = freshChecklist();
      terms = [];
      setLoading(false);
      renderChecklist();
      renderCollage();
      alert(e.message || 'Search failed. Please check your GEMINI_API_KEY.');
    }
  }

  queryEl.addEventListener('input', () => {
    searchBtn.disabled = loading || !queryEl.value.trim();
  });

  formEl.addEventListener('submit', e => {
    e.preventDefault();
    const query = queryEl.value.trim();
    if (!query || loading) return;
    runSearch(query);
  });

  SETTINGS.suggestions.forEach(suggestion => {
    const btn = document.createElement('button');
    btn.type = 'button';
    btn.textContent = suggestion;
    btn.addEventListener('click', () => {
      queryEl.value = suggestion;
      runSearch(suggestion);
    });
    chipsEl.appendChild(btn);
  });

  renderChecklist();
</script>
</body>
</html>
"""

if __name__ == "__main__":
    app.run(debug=True, port=settings.port, threaded=True)

"""
In-page DOM algorithms.

Each constant is a JavaScript function expression handed to
``page.evaluate(script, arg)``. They run against the live document and
return plain JSON-compatible data.
"""

# Shared helpers. Every script below inlines this block.
#
# Selector synthesis, in priority order:
#   1. ``#id``
#   2. ``tag.class1.class2`` when it resolves to exactly this element
#   3. path from the nearest ancestor (<= 10 levels up) that has an id or a
#      document-unique class selector, at most 5 segments below it
#   4. path from <body>, capped to the last 5 levels (may be ambiguous)
_HELPERS = r"""
  const MAX_ANCESTOR_DEPTH = 10;
  const MAX_PATH_LEVELS = 5;

  function esc(value) {
    if (window.CSS && typeof window.CSS.escape === 'function') {
      return window.CSS.escape(value);
    }
    return String(value).replace(/([^a-zA-Z0-9_\-])/g, '\\$1');
  }

  function ownClasses(el) {
    return Array.from(el.classList || []).filter((c) => c && !c.startsWith('_'));
  }

  function classSelector(el) {
    const classes = ownClasses(el);
    if (!classes.length) return null;
    return el.tagName.toLowerCase() + classes.map((c) => '.' + esc(c)).join('');
  }

  function isUnique(el, selector) {
    try {
      const matches = document.querySelectorAll(selector);
      return matches.length === 1 && matches[0] === el;
    } catch (e) {
      return false;
    }
  }

  function segmentFor(node) {
    const tag = node.tagName.toLowerCase();
    const parent = node.parentElement;
    const classes = ownClasses(node);
    if (!parent) {
      return classes.length ? classSelector(node) : tag;
    }
    const siblings = Array.from(parent.children);
    if (classes.length) {
      const own = classSelector(node);
      // Siblings with a superset of the classes match the segment too.
      const matching = siblings.filter((s) => s.matches(own));
      if (matching.length === 1) {
        return own;
      }
      const sameTag = siblings.filter((s) => s.tagName === node.tagName);
      return own + ':nth-of-type(' + (sameTag.indexOf(node) + 1) + ')';
    }
    return tag + ':nth-child(' + (siblings.indexOf(node) + 1) + ')';
  }

  function anchorSelector(ancestor) {
    if (ancestor.id) return '#' + esc(ancestor.id);
    const byClass = classSelector(ancestor);
    if (byClass) return byClass;
    return ancestor.tagName.toLowerCase();
  }

  function pathFrom(ancestor, target) {
    const segments = [];
    let current = target;
    while (current && current !== ancestor && segments.length < MAX_PATH_LEVELS) {
      segments.unshift(segmentFor(current));
      current = current.parentElement;
    }
    const path = segments.join(' > ');
    if (current === ancestor) {
      return path ? anchorSelector(ancestor) + ' > ' + path : anchorSelector(ancestor);
    }
    // Truncated before reaching the anchor: descend from it loosely.
    if (ancestor !== document.body) {
      return anchorSelector(ancestor) + ' ' + path;
    }
    return path;
  }

  function synthesizeSelector(el) {
    if (el.id) return '#' + esc(el.id);

    const own = classSelector(el);
    if (own && isUnique(el, own)) return own;

    let ancestor = el.parentElement;
    let depth = 0;
    while (ancestor && depth < MAX_ANCESTOR_DEPTH) {
      if (ancestor.id) return pathFrom(ancestor, el);
      const ancestorSelector = classSelector(ancestor);
      if (ancestorSelector && isUnique(ancestor, ancestorSelector)) {
        return pathFrom(ancestor, el);
      }
      ancestor = ancestor.parentElement;
      depth++;
    }
    return pathFrom(document.body, el);
  }

  function isVisible(el) {
    const style = window.getComputedStyle(el);
    return style.display !== 'none' && style.visibility !== 'hidden' && style.opacity !== '0';
  }

  function directText(el) {
    let text = '';
    for (const node of el.childNodes) {
      if (node.nodeType === Node.TEXT_NODE) text += node.textContent || '';
    }
    return text.trim();
  }
"""


def _wrap(body: str) -> str:
    return "(args) => {\n" + _HELPERS + body + "\n}"


SYNTHESIZE_SELECTOR_JS = _wrap(
    r"""
  let el;
  try {
    el = document.querySelector(args.selector);
  } catch (e) {
    return { error: 'invalid_selector', message: String(e && e.message || e) };
  }
  if (!el) return { found: false };
  return { found: true, selector: synthesizeSelector(el) };
"""
)


FIND_ELEMENT_BY_TEXT_JS = _wrap(
    r"""
  const CANDIDATES = {
    link: ['a', '[role="link"]'],
    button: ['button', '[role="button"]', 'input[type="button"]', 'input[type="submit"]'],
    any: ['a', 'button', 'input', 'select', 'textarea', '[role="button"]', '[role="link"]', '[onclick]'],
  };
  const search = String(args.text || '').trim().toLowerCase();
  const exact = !!args.exact;
  const test = (value) => {
    const v = String(value || '').trim().toLowerCase();
    return exact ? v === search : v.includes(search);
  };

  function score(el) {
    if (test(directText(el))) return 100;
    if (test(el.innerText || '')) return 90;
    for (const attr of ['aria-label', 'title', 'placeholder']) {
      if (test(el.getAttribute(attr) || '')) return 80;
    }
    return 0;
  }

  const seen = new Set();
  const matches = [];
  for (const selector of CANDIDATES[args.elementType] || CANDIDATES.any) {
    for (const el of document.querySelectorAll(selector)) {
      if (seen.has(el)) continue;
      seen.add(el);
      const s = score(el);
      if (!s) continue;
      matches.push({
        selector: synthesizeSelector(el),
        text: (el.innerText || el.textContent || '').trim().substring(0, 100),
        tag: el.tagName.toLowerCase(),
        visible: isVisible(el),
        clickable: true,
        score: s,
      });
    }
  }
  matches.sort((a, b) => (b.score - a.score) || ((b.visible ? 1 : 0) - (a.visible ? 1 : 0)));
  return matches.length ? matches[0] : null;
"""
)


PAGE_STRUCTURE_JS = _wrap(
    r"""
  const INTERACTIVE = [
    'a', 'button', 'input', 'select', 'textarea',
    '[role="button"]', '[role="link"]', '[onclick]', '.clickable',
  ];
  const NATIVE = ['a', 'button', 'input', 'select', 'textarea'];

  function isClickable(el) {
    if (NATIVE.includes(el.tagName.toLowerCase())) return true;
    return el.hasAttribute('onclick') || el.hasAttribute('role');
  }

  function label(el) {
    let text = '';
    for (const node of el.childNodes) {
      if (node.nodeType === Node.TEXT_NODE) text += (node.textContent || '').trim();
    }
    if (!text) {
      text = el.getAttribute('aria-label') || el.getAttribute('title') ||
        el.getAttribute('placeholder') || el.getAttribute('alt') || '';
    }
    return text.trim().substring(0, 100);
  }

  let root;
  try {
    root = args.selector ? document.querySelector(args.selector) : document.body;
  } catch (e) {
    root = null;
  }
  if (!root) return { elements: [], error: 'Root element not found', totalFound: 0 };

  const maxElements = args.maxElements;
  const elements = [];
  const seen = new Set();
  outer:
  for (const selector of INTERACTIVE) {
    for (const el of root.querySelectorAll(selector)) {
      if (elements.length >= maxElements) break outer;
      if (seen.has(el)) continue;
      seen.add(el);
      const visible = isVisible(el);
      if (!args.includeHidden && !visible) continue;

      const item = {
        type: el.getAttribute('role') || el.tagName.toLowerCase(),
        text: label(el),
        selector: synthesizeSelector(el),
        visible,
        clickable: isClickable(el),
        tag: el.tagName.toLowerCase(),
      };
      const attributes = {};
      if (el.href) attributes.href = String(el.href);
      if (el.getAttribute('type')) attributes.type = el.getAttribute('type');
      if (el.getAttribute('class')) attributes.class = el.getAttribute('class');
      if (Object.keys(attributes).length) item.attributes = attributes;
      elements.push(item);
    }
  }
  return { elements, totalFound: elements.length };
"""
)


QUERY_SELECTOR_JS = _wrap(
    r"""
  function boxVisible(el) {
    const rect = el.getBoundingClientRect();
    return isVisible(el) && rect.width > 0 && rect.height > 0;
  }

  function info(el) {
    const rect = el.getBoundingClientRect();
    const out = {
      tag: el.tagName.toLowerCase(),
      text: (el.innerText || el.textContent || '').trim().substring(0, 200),
      visible: boxVisible(el),
      selector: synthesizeSelector(el),
      position: {
        x: Math.round(rect.x),
        y: Math.round(rect.y),
        width: Math.round(rect.width),
        height: Math.round(rect.height),
      },
    };
    if (args.includeAttributes) {
      const attrs = {};
      for (const attr of el.attributes) attrs[attr.name] = attr.value;
      if (Object.keys(attrs).length) out.attributes = attrs;
    }
    return out;
  }

  try {
    if (args.multiple) {
      const found = Array.from(document.querySelectorAll(args.selector)).map(info);
      return { found: found.length > 0, count: found.length, elements: found };
    }
    const el = document.querySelector(args.selector);
    if (!el) return { found: false };
    return { found: true, element: info(el) };
  } catch (e) {
    return { error: 'Invalid selector', message: String(e && e.message || e) };
  }
"""
)


PAGE_CONTENT_JS = _wrap(
    r"""
  let el = document.documentElement;
  let target = 'html';
  if (args.selector) {
    try {
      el = document.querySelector(args.selector);
    } catch (e) {
      return { error: 'Invalid selector', message: String(e && e.message || e) };
    }
    if (!el) return { error: 'Element not found' };
    target = args.selector;
  }

  let content = '';
  if (args.format === 'html') {
    content = el.outerHTML;
  } else if (args.format === 'text') {
    content = el.innerText || el.textContent || '';
  } else {
    content = el.innerHTML
      .replace(/<h1[^>]*>(.*?)<\/h1>/gi, '# $1\n\n')
      .replace(/<h2[^>]*>(.*?)<\/h2>/gi, '## $1\n\n')
      .replace(/<h3[^>]*>(.*?)<\/h3>/gi, '### $1\n\n')
      .replace(/<p[^>]*>(.*?)<\/p>/gi, '$1\n\n')
      .replace(/<a[^>]*href="([^"]*)"[^>]*>(.*?)<\/a>/gi, '[$2]($1)')
      .replace(/<strong[^>]*>(.*?)<\/strong>/gi, '**$1**')
      .replace(/<em[^>]*>(.*?)<\/em>/gi, '*$1*')
      .replace(/<br\s*\/?>/gi, '\n')
      .replace(/<[^>]+>/g, '')
      .replace(/\n{3,}/g, '\n\n')
      .trim();
  }
  return {
    url: document.location.href,
    title: document.title,
    content,
    format: args.format,
    selector: target,
  };
"""
)


SCROLL_JS = r"""(args) => {
  const behavior = args.smooth ? 'smooth' : 'auto';
  const hasPosition = args.x !== null || args.y !== null;
  const target = args.target || (hasPosition ? 'position' : 'bottom');
  if (target === 'position') {
    window.scrollTo({
      top: args.y !== null ? args.y : window.scrollY,
      left: args.x !== null ? args.x : window.scrollX,
      behavior,
    });
    return { scrolled: true, target: 'position', x: args.x, y: args.y };
  }
  if (target === 'top') {
    window.scrollTo({ top: 0, left: 0, behavior });
    return { scrolled: true, target: 'top' };
  }
  if (target === 'bottom') {
    window.scrollTo({ top: document.body.scrollHeight, left: 0, behavior });
    return { scrolled: true, target: 'bottom' };
  }
  if (target === 'element' && args.selector) {
    let el;
    try {
      el = document.querySelector(args.selector);
    } catch (e) {
      return { error: 'Invalid selector', selector: args.selector };
    }
    if (!el) return { error: 'Element not found', selector: args.selector };
    el.scrollIntoView({ behavior, block: 'center' });
    return { scrolled: true, target: 'element', selector: args.selector };
  }
  return { error: 'Invalid scroll parameters' };
}"""


EXECUTE_SCRIPT_JS = r"""async ({ script, args }) => {
  try {
    const fn = new Function('args', 'return (function() {\n' + script + '\n})();');
    return { success: true, result: await fn(args) };
  } catch (e) {
    return { success: false, error: String(e && e.message || e), stack: e && e.stack };
  }
}"""

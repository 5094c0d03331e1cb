# dom_script.py
from .constants import BINDING_NAME, STOP_FLAG, UI_ROOT_ID, CONSOLE_TAG

_CAPTURE_TEMPLATE = r"""
(() => {
  if (window.__swapRecorderInstalled) return;
  window.__swapRecorderInstalled = true;

  const TAG = '__TAG__';
  const UI_ROOT = '#__UI_ROOT__';
  const TEST_ATTRS = ['data-testid', 'data-test', 'data-cy', 'data-id', 'data-qa'];
  const HASHED_CLASS = /^(css-|_)/;
  const CLICK_TARGETS = 'button, a, [role="button"], [role="option"], [role="menuitem"], input, select, label';
  const MAX_MARKUP = 2000;

  function emit(record) {
    const send = window['__BINDING__'];
    if (typeof send !== 'function') return;
    try {
      Promise.resolve(send(record)).catch(err => console.error(TAG, 'emit failed', String(err)));
    } catch (err) {
      console.error(TAG, 'emit failed', String(err));
    }
  }

  function esc(value) {
    return (window.CSS && CSS.escape) ? CSS.escape(value) : String(value).replace(/([^\w-])/g, '\\$1');
  }

  function quoteAttr(value) {
    return String(value).replace(/\\/g, '\\\\').replace(/"/g, '\\"');
  }

  function stableId(id) {
    return !!id && !id.includes(':');
  }

  function stableClasses(el) {
    if (typeof el.className !== 'string') return [];
    return el.className.trim().split(/\s+/).filter(c => c && !HASHED_CLASS.test(c));
  }

  function matchesOnce(selector) {
    try {
      return document.querySelectorAll(selector).length === 1;
    } catch (err) {
      return false;
    }
  }

  function positionalPath(el) {
    const parts = [];
    let current = el;
    while (current && current.nodeType === Node.ELEMENT_NODE && parts.length < 5) {
      if (stableId(current.id)) {
        parts.unshift('#' + esc(current.id));
        break;
      }
      let part = current.tagName.toLowerCase();
      const parent = current.parentElement;
      if (parent) {
        const sameTag = Array.from(parent.children).filter(s => s.tagName === current.tagName);
        if (sameTag.length > 1) part += ':nth-of-type(' + (sameTag.indexOf(current) + 1) + ')';
      }
      parts.unshift(part);
      current = parent;
    }
    return parts.join(' > ');
  }

  function selectorFor(el) {
    if (stableId(el.id)) return '#' + esc(el.id);
    for (const attr of TEST_ATTRS) {
      const value = el.getAttribute(attr);
      if (value) return '[' + attr + '="' + quoteAttr(value) + '"]';
    }
    const aria = el.getAttribute('aria-label');
    if (aria) return '[aria-label="' + quoteAttr(aria) + '"]';
    const classes = stableClasses(el);
    if (classes.length) {
      const selector = el.tagName.toLowerCase() + '.' + classes.map(esc).join('.');
      if (matchesOnce(selector)) return selector;
    }
    return positionalPath(el);
  }

  function xpathFor(el) {
    const parts = [];
    let current = el;
    while (current && current.nodeType === Node.ELEMENT_NODE) {
      let index = 1;
      let sibling = current.previousElementSibling;
      while (sibling) {
        if (sibling.nodeName === current.nodeName) index++;
        sibling = sibling.previousElementSibling;
      }
      parts.unshift(current.nodeName.toLowerCase() + '[' + index + ']');
      current = current.parentElement;
    }
    return '/' + parts.join('/');
  }

  function parentChain(el) {
    const chain = [];
    let current = el.parentElement;
    while (current && chain.length < 5) {
      chain.push(current.tagName.toLowerCase() + (current.id ? '#' + current.id : ''));
      current = current.parentElement;
    }
    return chain;
  }

  function describe(el) {
    const rect = el.getBoundingClientRect();
    const style = window.getComputedStyle(el);
    const attributes = {};
    for (const attr of Array.from(el.attributes)) attributes[attr.name] = attr.value;
    return {
      tag: el.tagName.toLowerCase(),
      text: ((el.innerText || el.textContent || '') + '').trim().slice(0, 200),
      value: el.value !== undefined ? String(el.value) : null,
      placeholder: el.getAttribute('placeholder'),
      type: el.getAttribute('type'),
      className: typeof el.className === 'string' ? el.className : '',
      id: el.id || '',
      name: el.getAttribute('name'),
      role: el.getAttribute('role'),
      ariaLabel: el.getAttribute('aria-label'),
      dataTestId: el.getAttribute('data-testid'),
      href: el.href || null,
      outerHTML: (el.outerHTML || '').slice(0, MAX_MARKUP),
      attributes,
      position: { top: rect.top, left: rect.left, width: rect.width, height: rect.height },
      computed: {
        display: style.display,
        visibility: style.visibility,
        opacity: style.opacity,
        zIndex: style.zIndex
      },
      parents: parentChain(el),
      frameInfo: { isInFrame: window !== window.top, frameUrl: window.location.href }
    };
  }

  function insideRecorderUi(el) {
    return !!(el.closest && el.closest(UI_ROOT));
  }

  document.addEventListener('click', (e) => {
    try {
      const raw = e.target;
      if (!(raw instanceof Element) || insideRecorderUi(raw)) return;
      const target = raw.closest(CLICK_TARGETS) || raw;
      const text = (target.innerText || target.textContent || '') + '';
      emit({
        type: 'click',
        timestamp: Date.now(),
        selector: selectorFor(target),
        xpath: xpathFor(target),
        coordinates: { x: e.clientX, y: e.clientY, pageX: e.pageX, pageY: e.pageY },
        element: describe(target),
        isSwapAction: /swap|confirm|approve|connect|select|max|balance/i.test(text)
      });
    } catch (err) {
      console.error(TAG, 'click capture failed', String(err));
    }
  }, true);

  document.addEventListener('input', (e) => {
    try {
      const target = e.target;
      if (!(target instanceof Element) || insideRecorderUi(target)) return;
      const hint = (target.getAttribute('placeholder') || '') + ' ' + (target.getAttribute('name') || '');
      emit({
        type: 'input',
        timestamp: Date.now(),
        selector: selectorFor(target),
        xpath: xpathFor(target),
        value: target.value !== undefined ? String(target.value) : null,
        element: describe(target),
        isAmountInput: /amount|quantity|value/i.test(hint)
      });
    } catch (err) {
      console.error(TAG, 'input capture failed', String(err));
    }
  }, true);

  document.addEventListener('submit', (e) => {
    try {
      const form = e.target;
      if (!(form instanceof Element)) return;
      const formData = {};
      form.querySelectorAll('input, select, textarea').forEach((field) => {
        if (field.name) formData[field.name] = field.value;
      });
      emit({
        type: 'submit',
        timestamp: Date.now(),
        selector: selectorFor(form),
        xpath: xpathFor(form),
        formData,
        element: describe(form)
      });
    } catch (err) {
      console.error(TAG, 'submit capture failed', String(err));
    }
  }, true);

  function wrapProvider(provider) {
    if (!provider || provider.__swapRecorderWrapped || typeof provider.request !== 'function') return;
    const original = provider.request;
    try {
      provider.request = function (args) {
        try {
          emit({
            type: 'wallet',
            timestamp: Date.now(),
            method: args && args.method,
            params: args && args.params !== undefined ? JSON.parse(JSON.stringify(args.params)) : null
          });
        } catch (err) {
          console.error(TAG, 'wallet capture failed', String(err));
        }
        return original.apply(this, arguments);
      };
      provider.__swapRecorderWrapped = true;
    } catch (err) {
      console.error(TAG, 'wallet provider is not writable', String(err));
    }
  }

  if (window.ethereum) {
    wrapProvider(window.ethereum);
  } else {
    window.addEventListener('ethereum#initialized', () => wrapProvider(window.ethereum), { once: true });
  }
})();
"""

_UI_TEMPLATE = r"""
() => {
  if (window !== window.top || !document.body) return false;
  const old = document.getElementById('__UI_ROOT__');
  if (old) old.remove();

  const ui = document.createElement('div');
  ui.id = '__UI_ROOT__';
  ui.style.cssText = 'position:fixed;top:10px;right:10px;z-index:2147483647;' +
    'font-family:-apple-system,BlinkMacSystemFont,"Segoe UI",Roboto,sans-serif;';
  ui.innerHTML = `
    <div id="__UI_ROOT__-panel" style="background:#4c3a8f;border-radius:10px;padding:10px;min-width:150px;
         color:white;font-size:11px;box-shadow:0 8px 20px rgba(0,0,0,0.3);">
      <div style="font-weight:600;margin-bottom:6px;">&#9679; RECORDING</div>
      <div id="__UI_ROOT__-timer" style="font-size:18px;font-weight:bold;text-align:center;margin-bottom:6px;">00:00</div>
      <div>Actions: <b id="__UI_ROOT__-actions">0</b></div>
      <div>Clicks: <b id="__UI_ROOT__-clicks">0</b></div>
      <div>API Calls: <b id="__UI_ROOT__-network">0</b></div>
      <button id="__UI_ROOT__-stop" style="width:100%;margin-top:8px;padding:6px;border:none;border-radius:6px;
              background:white;color:#4c3a8f;font-weight:600;cursor:pointer;">STOP RECORDING</button>
    </div>`;
  document.body.appendChild(ui);

  const started = Date.now();
  const timer = setInterval(() => {
    const el = document.getElementById('__UI_ROOT__-timer');
    if (!el) return clearInterval(timer);
    const elapsed = Math.floor((Date.now() - started) / 1000);
    el.textContent = String(Math.floor(elapsed / 60)).padStart(2, '0') + ':' + String(elapsed % 60).padStart(2, '0');
  }, 1000);

  document.getElementById('__UI_ROOT__-stop').addEventListener('click', () => {
    window.__STOP_FLAG__ = true;
    clearInterval(timer);
    const panel = document.getElementById('__UI_ROOT__-panel');
    if (panel) panel.innerHTML = '<div style="text-align:center;padding:8px;">Recording stopped</div>';
  });
  return true;
}
"""

_UI_UPDATE_TEMPLATE = r"""
(counts) => {
  for (const [key, value] of Object.entries(counts)) {
    const el = document.getElementById('__UI_ROOT__-' + key);
    if (el) el.textContent = String(value);
  }
}
"""


def _render(template: str) -> str:
    return (template
            .replace('__BINDING__', BINDING_NAME)
            .replace('__STOP_FLAG__', STOP_FLAG)
            .replace('__UI_ROOT__', UI_ROOT_ID)
            .replace('__TAG__', CONSOLE_TAG))


CAPTURE_SCRIPT = _render(_CAPTURE_TEMPLATE)
RECORDER_UI_SCRIPT = _render(_UI_TEMPLATE)
UPDATE_UI_SCRIPT = _render(_UI_UPDATE_TEMPLATE)
STOP_CHECK_SCRIPT = f"() => window.{STOP_FLAG} === true"

"""
Page-side capture scripts.

The capture script only forwards raw DOM signals to a single exposed binding.
All recording state (gating, de-duplication, commit arbitration) lives in
Python on the engine instance; the page keeps nothing but its listeners and the
client-side scroll/hover debounce.
"""

import json
from typing import Any, Dict

from replay_use.recording.config import EDITABLE_FIELD_SELECTOR, SPECIAL_KEYS, CaptureTimings

_CAPTURE_JS = r"""
(options) => {
	const installKey = options.binding + '_installed';
	if (window[installKey]) {
		return;
	}
	window[installKey] = true;

	const controller = new AbortController();
	const listen = { capture: true, passive: true, signal: controller.signal };
	const timers = { scroll: null, hover: null };

	const emit = (payload) => {
		const fn = window[options.binding];
		if (typeof fn !== 'function') {
			return;
		}
		try {
			const result = fn(payload);
			if (result && typeof result.catch === 'function') {
				result.catch(() => {});
			}
		} catch (e) {}
	};

	const esc = (value) => (window.CSS && CSS.escape ? CSS.escape(value) : value);

	const nthOfType = (el) => {
		const tag = el.tagName.toLowerCase();
		const parent = el.parentElement;
		if (!parent) {
			return tag;
		}
		const siblings = Array.from(parent.children).filter((c) => c.tagName === el.tagName);
		if (siblings.length < 2) {
			return tag;
		}
		return tag + ':nth-of-type(' + (siblings.indexOf(el) + 1) + ')';
	};

	const selectorFor = (el) => {
		if (!el || !el.tagName) {
			return '';
		}
		if (el.id) {
			return '#' + esc(el.id);
		}
		const name = el.getAttribute('name');
		if (name) {
			return el.tagName.toLowerCase() + '[name="' + name + '"]';
		}
		const classes = (typeof el.className === 'string' ? el.className : '')
			.trim()
			.split(/\s+/)
			.filter(Boolean)
			.slice(0, 2);
		if (classes.length) {
			return el.tagName.toLowerCase() + '.' + classes.map(esc).join('.');
		}
		return nthOfType(el);
	};

	const fieldKey = (el) => {
		if (el.id) {
			return '#' + esc(el.id);
		}
		const name = el.getAttribute('name');
		if (name) {
			return '[name="' + name + '"]';
		}
		return nthOfType(el);
	};

	const CHOICE_TYPES = ['checkbox', 'radio', 'file'];
	const NON_TEXT_TYPES = CHOICE_TYPES.concat(['submit', 'button', 'reset', 'image', 'hidden']);

	const fieldType = (el) => (el.isContentEditable ? 'contenteditable' : (el.type || el.tagName).toLowerCase());

	const isTextField = (el) =>
		!!el && !!el.matches && el.matches(options.fieldSelector) && !NON_TEXT_TYPES.includes(fieldType(el));

	const isChoiceField = (el) =>
		!!el && !!el.tagName && (el.tagName === 'SELECT' || (el.tagName === 'INPUT' && CHOICE_TYPES.includes(fieldType(el))));

	const fieldValue = (el) => (el.isContentEditable ? el.innerText || '' : el.value || '');

	const describe = (el) => ({
		selector: fieldKey(el),
		value: fieldValue(el),
		fieldType: fieldType(el),
		tagName: el.tagName.toLowerCase(),
		isFocused: document.activeElement === el,
	});

	const modifiers = (e) => ({ ctrlKey: e.ctrlKey, shiftKey: e.shiftKey, altKey: e.altKey, metaKey: e.metaKey });

	document.addEventListener('click', (e) => {
		const t = e.target;
		emit(Object.assign({
			kind: 'click',
			selector: selectorFor(t),
			x: e.clientX,
			y: e.clientY,
			tagName: t && t.tagName ? t.tagName.toLowerCase() : '',
			text: t && t.innerText ? t.innerText.slice(0, 100) : '',
		}, modifiers(e)));
	}, listen);

	window.addEventListener('scroll', () => {
		clearTimeout(timers.scroll);
		timers.scroll = setTimeout(() => {
			emit({ kind: 'scroll', x: window.scrollX, y: window.scrollY });
		}, options.scrollDebounceMs);
	}, listen);

	document.addEventListener('mouseover', (e) => {
		const t = e.target;
		const x = e.clientX;
		const y = e.clientY;
		clearTimeout(timers.hover);
		timers.hover = setTimeout(() => {
			emit({ kind: 'hover', selector: selectorFor(t), x: x, y: y });
		}, options.hoverDebounceMs);
	}, listen);

	document.addEventListener('keydown', (e) => {
		if (!options.specialKeys.includes(e.key)) {
			return;
		}
		const t = e.target;
		const inField = isTextField(t);
		emit(Object.assign({
			kind: 'keydown',
			key: e.key,
			selector: selectorFor(t),
			inField: inField,
			field: inField ? describe(t) : null,
		}, modifiers(e)));
	}, listen);

	document.addEventListener('submit', (e) => {
		const form = e.target;
		emit({
			kind: 'submit',
			selector: selectorFor(form),
			action: form.action || '',
			method: (form.method || 'get').toUpperCase(),
		});
	}, listen);

	document.addEventListener('focusin', (e) => {
		if (isTextField(e.target)) {
			emit({ kind: 'focus', field: describe(e.target) });
		}
	}, listen);

	document.addEventListener('focusout', (e) => {
		if (isTextField(e.target)) {
			const field = describe(e.target);
			field.isFocused = false;
			emit({ kind: 'blur', field: field });
		}
	}, listen);

	document.addEventListener('change', (e) => {
		const t = e.target;
		if (!isChoiceField(t)) {
			return;
		}
		const field = describe(t);
		if (field.fieldType === 'checkbox' || field.fieldType === 'radio') {
			field.value = String(t.checked);
		}
		emit({ kind: 'change', field: field });
	}, listen);

	window[options.binding + '_snapshot'] = () =>
		Array.from(document.querySelectorAll(options.fieldSelector)).filter(isTextField).map(describe);

	window[options.binding + '_teardown'] = () => {
		controller.abort();
		clearTimeout(timers.scroll);
		clearTimeout(timers.hover);
		delete window[options.binding + '_snapshot'];
		delete window[options.binding + '_teardown'];
		window[installKey] = false;
	};
}
"""

SNAPSHOT_FIELDS_JS = "(name) => { const fn = window[name + '_snapshot']; return typeof fn === 'function' ? fn() : []; }"

TEARDOWN_JS = "(name) => { const fn = window[name + '_teardown']; if (typeof fn === 'function') { fn(); } }"


def capture_options(binding: str, timings: CaptureTimings) -> Dict[str, Any]:
	return {
		'binding': binding,
		'fieldSelector': EDITABLE_FIELD_SELECTOR,
		'specialKeys': sorted(SPECIAL_KEYS),
		'scrollDebounceMs': timings.scroll_debounce_ms,
		'hoverDebounceMs': timings.hover_debounce_ms,
	}


def capture_script(binding: str, timings: CaptureTimings) -> str:
	"""Self-invoking capture script, usable both as an init script and with evaluate."""
	return f'({_CAPTURE_JS})({json.dumps(capture_options(binding, timings))});'

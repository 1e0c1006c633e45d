"""JavaScript evaluated in page context by the scanner."""

# typeof on an undeclared root throws ReferenceError inside eval, which the
# browser adapter maps to ScriptReferenceError ("engine absent").
DETECT_PROBE = """(probe) => {
    return (typeof window.eval(probe) !== 'undefined');
}"""

OUTER_HTML = """() => document.documentElement.outerHTML"""

CLASS_MARKER = """(marker) => {
    const allElements = document.querySelectorAll('*');
    for (const element of allElements) {
        if (element.classList && element.classList.value.includes(marker)) {
            return true;
        }
    }
    return false;
}"""

# Returns the number of inputs that received the value
FILL_INPUTS = """({ value, emailSuffix }) => {
    let filled = 0;
    const items = document.querySelectorAll('input');
    for (let i = 0; i < items.length; i++) {
        // File inputs cannot be set programmatically
        if (items[i].type === 'file') {
            continue;
        }
        if (items[i].type === 'email') {
            items[i].value = value + emailSuffix;
            filled++;
        } else if (items[i].type !== 'submit') {
            items[i].value = value;
            filled++;
        }
    }
    return filled;
}"""

# Returns false when the anchor is gone or its href is not a URL
REWRITE_LINK_AND_CLICK = """({ payload, index }) => {
    const anchor = document.querySelectorAll('a')[index];
    if (!anchor) {
        return false;
    }
    try {
        const urlObj = new URL(anchor.href);
        const params = urlObj.searchParams;
        for (const key of Array.from(params.keys())) {
            params.set(key, payload);
        }
        anchor.href = urlObj.toString();
    } catch (error) {
        return false;
    }
    anchor.click();
    return true;
}"""

# Prototype submit() bypasses fields named "submit" that shadow form.submit
SUBMIT_FORM = """(index) => {
    const form = document.querySelectorAll('form')[index];
    if (!form) {
        return false;
    }
    Object.getPrototypeOf(form).submit.call(form);
    return true;
}"""

CLICK_BUTTON = """(index) => {
    const button = document.querySelectorAll('button')[index];
    if (!button) {
        return false;
    }
    button.click();
    return true;
}"""

ANCHOR_HREFS = """() => Array.from(document.querySelectorAll('a')).map(anchor => anchor.href)"""

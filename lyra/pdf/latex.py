"""
LaTeX to Unicode approximation.

Formulas are flattened to plain text: known macros become their Unicode
symbol, simple super/subscripts become Unicode super/subscript characters and
everything else is stripped of backslashes and braces. This is not a LaTeX
renderer; fractions, matrices and accents come out as readable text only.
"""

import re

LATEX_UNICODE_MAP = {
    # Greek, lower case
    'alpha': 'α', 'beta': 'β', 'gamma': 'γ', 'delta': 'δ',
    'epsilon': 'ε', 'varepsilon': 'ε', 'zeta': 'ζ', 'eta': 'η',
    'theta': 'θ', 'vartheta': 'ϑ', 'iota': 'ι', 'kappa': 'κ',
    'lambda': 'λ', 'mu': 'μ', 'nu': 'ν', 'xi': 'ξ',
    'pi': 'π', 'varpi': 'ϖ', 'rho': 'ρ', 'varrho': 'ϱ',
    'sigma': 'σ', 'varsigma': 'ς', 'tau': 'τ', 'upsilon': 'υ',
    'phi': 'φ', 'varphi': 'φ', 'chi': 'χ', 'psi': 'ψ', 'omega': 'ω',

    # Greek, upper case
    'Alpha': 'Α', 'Beta': 'Β', 'Gamma': 'Γ', 'Delta': 'Δ',
    'Epsilon': 'Ε', 'Zeta': 'Ζ', 'Eta': 'Η', 'Theta': 'Θ',
    'Iota': 'Ι', 'Kappa': 'Κ', 'Lambda': 'Λ', 'Mu': 'Μ',
    'Nu': 'Ν', 'Xi': 'Ξ', 'Pi': 'Π', 'Rho': 'Ρ',
    'Sigma': 'Σ', 'Tau': 'Τ', 'Upsilon': 'Υ', 'Phi': 'Φ',
    'Chi': 'Χ', 'Psi': 'Ψ', 'Omega': 'Ω',

    # Operators
    'pm': '±', 'mp': '∓', 'times': '×', 'div': '÷',
    'cdot': '·', 'ast': '∗', 'star': '⋆', 'circ': '∘',
    'bullet': '•', 'oplus': '⊕', 'ominus': '⊖', 'otimes': '⊗',
    'oslash': '⊘', 'odot': '⊙', 'dagger': '†', 'ddagger': '‡',

    # Relations
    'leq': '≤', 'le': '≤', 'geq': '≥', 'ge': '≥',
    'neq': '≠', 'ne': '≠', 'approx': '≈', 'equiv': '≡',
    'sim': '∼', 'simeq': '≃', 'propto': '∝', 'perp': '⊥',
    'parallel': '∥', 'subset': '⊂', 'supset': '⊃',
    'subseteq': '⊆', 'supseteq': '⊇', 'in': '∈', 'notin': '∉',

    # Arrows
    'leftarrow': '←', 'rightarrow': '→', 'uparrow': '↑', 'downarrow': '↓',
    'leftrightarrow': '↔', 'updownarrow': '↕', 'Leftarrow': '⇐', 'Rightarrow': '⇒',
    'Uparrow': '⇑', 'Downarrow': '⇓', 'Leftrightarrow': '⇔', 'Updownarrow': '⇕',
    'mapsto': '↦', 'to': '→', 'gets': '←',

    # Misc symbols
    'infty': '∞', 'partial': '∂', 'nabla': '∇', 'forall': '∀',
    'exists': '∃', 'nexists': '∄', 'emptyset': '∅', 'varnothing': '∅',
    'complement': '∁', 'neg': '¬', 'wedge': '∧', 'vee': '∨',
    'cap': '∩', 'cup': '∪', 'int': '∫', 'iint': '∬', 'iiint': '∭',
    'oint': '∮', 'sum': '∑', 'prod': '∏', 'coprod': '∐',
    'bigcap': '⋂', 'bigcup': '⋃', 'bigvee': '⋁', 'bigwedge': '⋀',
    'bigoplus': '⨁', 'bigotimes': '⨂', 'bigodot': '⨀', 'biguplus': '⨄',

    # Delimiters
    'langle': '⟨', 'rangle': '⟩', 'lfloor': '⌊', 'rfloor': '⌋',
    'lceil': '⌈', 'rceil': '⌉', 'vert': '|', 'Vert': '‖',

    # Dots and the rest
    'dots': '…', 'cdots': '⋯', 'vdots': '⋮', 'ddots': '⋱',
    'ldots': '…', 'therefore': '∴', 'because': '∵',
    'angle': '∠', 'measuredangle': '∡', 'sphericalangle': '∢',
    'prime': '′', 'backprime': '‵', 'degree': '°',
}

SUPERSCRIPT_MAP = {
    '0': '⁰', '1': '¹', '2': '²', '3': '³', '4': '⁴',
    '5': '⁵', '6': '⁶', '7': '⁷', '8': '⁸', '9': '⁹',
    '+': '⁺', '-': '⁻', '=': '⁼', '(': '⁽', ')': '⁾',
    'n': 'ⁿ', 'i': 'ⁱ', 'a': 'ᵃ', 'b': 'ᵇ', 'c': 'ᶜ',
    'd': 'ᵈ', 'e': 'ᵉ', 'f': 'ᶠ', 'g': 'ᵍ', 'h': 'ʰ',
    'j': 'ʲ', 'k': 'ᵏ', 'l': 'ˡ', 'm': 'ᵐ', 'o': 'ᵒ',
    'p': 'ᵖ', 'r': 'ʳ', 's': 'ˢ', 't': 'ᵗ', 'u': 'ᵘ',
    'v': 'ᵛ', 'w': 'ʷ', 'x': 'ˣ', 'y': 'ʸ', 'z': 'ᶻ',
}

SUBSCRIPT_MAP = {
    '0': '₀', '1': '₁', '2': '₂', '3': '₃', '4': '₄',
    '5': '₅', '6': '₆', '7': '₇', '8': '₈', '9': '₉',
    '+': '₊', '-': '₋', '=': '₌', '(': '₍', ')': '₎',
    'a': 'ₐ', 'e': 'ₑ', 'h': 'ₕ', 'i': 'ᵢ', 'j': 'ⱼ',
    'k': 'ₖ', 'l': 'ₗ', 'm': 'ₘ', 'n': 'ₙ', 'o': 'ₒ',
    'p': 'ₚ', 'r': 'ᵣ', 's': 'ₛ', 't': 'ₜ', 'u': 'ᵤ',
    'v': 'ᵥ', 'x': 'ₓ',
}

# Longest names first so \leq is not eaten by \le
_MACRO_PATTERNS = [
    (re.compile(r'\\' + name + r'(?![a-zA-Z])'), symbol)
    for name, symbol in sorted(LATEX_UNICODE_MAP.items(), key=lambda item: -len(item[0]))
]

_FRACTION = re.compile(r'\\frac\{([^{}]*)\}\{([^{}]*)\}')
_SQRT = re.compile(r'\\sqrt\{([^{}]*)\}')
_FONT_COMMANDS = re.compile(
    r'\\(?:mathbb|mathcal|mathbf|mathrm|mathit|boldsymbol|text|operatorname)\{([^{}]*)\}')

def to_superscript(text: str) -> str:
    return ''.join(SUPERSCRIPT_MAP.get(ch, ch) for ch in text)


def to_subscript(text: str) -> str:
    return ''.join(SUBSCRIPT_MAP.get(ch, ch) for ch in text)


def simplify_latex(latex: str) -> str:
    """
    Flatten a LaTeX formula to Unicode text.

    Examples:
        simplify_latex(r'\\alpha^2 + \\beta_i') == 'α² + βᵢ'
        simplify_latex(r'\\frac{a}{b}') == '(a)/(b)'
    """
    result = re.sub(r'\s+', ' ', latex or '').strip()

    result = _FONT_COMMANDS.sub(r'\1', result)
    result = _FRACTION.sub(r'(\1)/(\2)', result)
    result = _SQRT.sub(r'√(\1)', result)
    result = re.sub(r'\\(?:left|right)(?![a-zA-Z])', '', result)

    result = re.sub(r'\^\{([^{}]+)\}', lambda m: to_superscript(m.group(1)), result)
    result = re.sub(r'\^(\w)', lambda m: to_superscript(m.group(1)), result)
    result = re.sub(r'_\{([^{}]+)\}', lambda m: to_subscript(m.group(1)), result)
    result = re.sub(r'_(\w)', lambda m: to_subscript(m.group(1)), result)

    for pattern, symbol in _MACRO_PATTERNS:
        result = pattern.sub(symbol, result)

    # Unknown macros keep their name, escaped characters lose the backslash
    result = re.sub(r'\\([a-zA-Z]+)', r'\1', result)
    result = re.sub(r'\\(.)', r'\1', result)
    return re.sub(r'[{}]', '', result)


def inline_math(latex: str) -> str:
    """Inline formula as it appears in running text"""
    return f"⟨{simplify_latex(latex)}⟩"

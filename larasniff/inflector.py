#!/usr/bin/env python3
"""
Laravel-compatible table name inflection.

``Model::getTable()`` defaults to ``Str::snake(Str::pluralStudly(class))``:
the class name is snake-cased and only its last word is pluralized.
"""

import re

IRREGULAR = {
    'person': 'people',
    'man': 'men',
    'woman': 'women',
    'child': 'children',
    'mouse': 'mice',
    'goose': 'geese',
    'foot': 'feet',
    'tooth': 'teeth',
    'ox': 'oxen',
    'leaf': 'leaves',
    'life': 'lives',
    'knife': 'knives',
    'cafe': 'cafes',
    'wife': 'wives',
    'half': 'halves',
    'criterion': 'criteria',
    'datum': 'data',
    'medium': 'media',
    'analysis': 'analyses',
    'basis': 'bases',
    'crisis': 'crises',
    'thesis': 'theses',
    'index': 'indices',
    'matrix': 'matrices',
    'vertex': 'vertices',
    'quiz': 'quizzes',
    'status': 'statuses',
    'alias': 'aliases',
    'bus': 'buses',
    'virus': 'viruses',
    'cactus': 'cacti',
    'focus': 'foci',
    'octopus': 'octopuses',
    'hero': 'heroes',
    'potato': 'potatoes',
    'tomato': 'tomatoes',
    'echo': 'echoes',
    'move': 'moves',
    'sex': 'sexes',
    'zombie': 'zombies',
    'cookie': 'cookies',
    'movie': 'movies',
}

UNCOUNTABLE = frozenset({
    'audio', 'bison', 'chassis', 'compensation', 'coreopsis', 'data', 'deer',
    'education', 'emoji', 'equipment', 'evidence', 'feedback', 'firmware',
    'fish', 'furniture', 'gold', 'hardware', 'information', 'jedi', 'kin',
    'knowledge', 'love', 'metadata', 'money', 'moose', 'news', 'nutrition',
    'offspring', 'plankton', 'pokemon', 'police', 'rain', 'recommended',
    'related', 'rice', 'series', 'sheep', 'software', 'species', 'swine',
    'traffic', 'wheat', 'staff', 'media', 'cattle', 'aircraft',
})

# Applied in order; first match wins
_RULES = [
    (re.compile(r'(quiz)$', re.I), r'\1zes'),
    (re.compile(r'(matr|vert|ind)(ix|ex)$', re.I), r'\1ices'),
    (re.compile(r'(x|ch|ss|sh|zz)$', re.I), r'\1es'),
    (re.compile(r'([^aeiouy]|qu)y$', re.I), r'\1ies'),
    (re.compile(r'(hive)$', re.I), r'\1s'),
    (re.compile(r'(?:([^f])fe|([lr])f)$', re.I), r'\1\2ves'),
    (re.compile(r'sis$', re.I), 'ses'),
    (re.compile(r'([ti])um$', re.I), r'\1a'),
    (re.compile(r'(buffal|tomat|potat|her)o$', re.I), r'\1oes'),
    (re.compile(r'(alias|status|campus|bus|virus)$', re.I), r'\1es'),
    (re.compile(r'(ax|test)is$', re.I), r'\1es'),
    (re.compile(r'us$', re.I), 'uses'),
    (re.compile(r's$', re.I), 's'),
    (re.compile(r'z$', re.I), 'zes'),
    (re.compile(r'$'), 's'),
]

_SNAKE_RE = re.compile(r'(.)(?=[A-Z])')


def _match_case(word: str, plural: str) -> str:
    if word.isupper() and len(word) > 1:
        return plural.upper()
    if word[:1].isupper():
        return plural[:1].upper() + plural[1:]
    return plural


def pluralize(word: str) -> str:
    """Plural of a single English word, keeping its leading case."""
    if not word:
        return word
    lower = word.lower()
    if lower in UNCOUNTABLE:
        return word
    if lower in IRREGULAR:
        return _match_case(word, IRREGULAR[lower])
    if lower in IRREGULAR.values():
        return word
    for pattern, replacement in _RULES:
        if pattern.search(word):
            return pattern.sub(replacement, word, count=1)
    return word + 's'


def snake_case(name: str) -> str:
    """``UserProfile`` -> ``user_profile`` (matches ``Str::snake``)."""
    return _SNAKE_RE.sub(r'\1_', name).lower()


def table_name(class_name: str) -> str:
    """Default table for an unqualified model class name."""
    short = class_name.rsplit('\\', 1)[-1]
    words = snake_case(short).split('_')
    words[-1] = pluralize(words[-1])
    return '_'.join(words)

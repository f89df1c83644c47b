"""
Script-aware lemmatization for Russian and English text.

Text is lowercased and split into word tokens; each token is sent to the
morphological analyzer for its script (Cyrillic -> pymorphy3, Latin ->
nltk WordNet). Function words (prepositions, conjunctions, particles,
pronouns, interjections) are dropped; everything else becomes its normal
form.

Analyzers load their dictionaries once, when constructed. Build one
Lemmatizer at startup and share it; it holds no mutable state.
"""
from __future__ import annotations
import re
import threading
from collections import Counter
from typing import Dict, List, Optional, Protocol, Set, Tuple

TOKEN_SPLIT = re.compile(r"[^a-zа-яё0-9\-']+")
CYRILLIC = re.compile(r"[а-яё]")
LATIN = re.compile(r"[a-z]")

# pymorphy3 (OpenCorpora) part-of-speech tags
RUSSIAN_STOP_CLASSES = frozenset({"PREP", "CONJ", "PRCL", "INTJ", "NPRO"})

# Penn Treebank tags
ENGLISH_STOP_CLASSES = frozenset({
    "CC",             # conjunction
    "IN", "TO",       # preposition / subordinating conjunction
    "RP",             # particle
    "PRP", "PRP$", "WP", "WP$",  # pronouns
    "UH",             # interjection
    "DT", "WDT",      # determiners
})

NLTK_RESOURCES = {
    "corpora/wordnet": "wordnet",
    "taggers/averaged_perceptron_tagger_eng": "averaged_perceptron_tagger_eng",
}


class Analyzer(Protocol):
    """Morphological analysis of a single lowercase token."""

    def analyze(self, word: str) -> Optional[str]:
        """Return the normal form, or None for a stop-class word."""
        ...


class RussianAnalyzer:
    def __init__(self):
        import pymorphy3
        self._morph = pymorphy3.MorphAnalyzer(lang="ru")

    def analyze(self, word: str) -> Optional[str]:
        parses = self._morph.parse(word)
        if not parses:
            return None
        best = parses[0]
        if best.tag.POS in RUSSIAN_STOP_CLASSES:
            return None
        return best.normal_form


def _wordnet_pos(penn_tag: str) -> str:
    if penn_tag.startswith("V"):
        return "v"
    if penn_tag.startswith("J"):
        return "a"
    if penn_tag.startswith("R"):
        return "r"
    return "n"


def ensure_nltk_data() -> None:
    """Download the nltk resources the English analyzer needs, if missing."""
    import nltk
    for path, package in NLTK_RESOURCES.items():
        try:
            nltk.data.find(path)
        except LookupError:
            nltk.download(package, quiet=True)


class EnglishAnalyzer:
    def __init__(self, download: bool = True):
        from nltk.stem import WordNetLemmatizer
        from nltk.tag.perceptron import PerceptronTagger
        if download:
            ensure_nltk_data()
        self._tagger = PerceptronTagger()
        self._lemmatizer = WordNetLemmatizer()
        # Force the lazy WordNet corpus to load now, on this thread
        self._lemmatizer.lemmatize("tests")

    def analyze(self, word: str) -> Optional[str]:
        tag = self._tagger.tag([word])[0][1]
        if tag in ENGLISH_STOP_CLASSES:
            return None
        return self._lemmatizer.lemmatize(word.strip("'-"), _wordnet_pos(tag)) or None


def split_words(text: str) -> List[str]:
    if not text:
        return []
    return [w for w in TOKEN_SPLIT.split(text.lower()) if len(w) > 1]


class Lemmatizer:
    def __init__(self, russian: Optional[Analyzer] = None, english: Optional[Analyzer] = None):
        self.russian = russian
        self.english = english

    def _analyzer_for(self, word: str) -> Optional[Analyzer]:
        if CYRILLIC.search(word):
            return self.russian
        if LATIN.search(word):
            return self.english
        return None

    def _lemma(self, word: str) -> Optional[str]:
        analyzer = self._analyzer_for(word)
        if analyzer is None:
            return None
        try:
            return analyzer.analyze(word)
        except Exception:
            # One unparseable token never aborts the whole text
            return None

    def lemma_occurrences(self, text: str) -> List[Tuple[str, str]]:
        """(surface form, lemma) for every kept token, in text order."""
        result = []
        for word in split_words(text):
            lemma = self._lemma(word)
            if lemma:
                result.append((word, lemma))
        return result

    def collect_lemma_counts(self, text: str) -> Dict[str, int]:
        return dict(Counter(lemma for _word, lemma in self.lemma_occurrences(text)))

    def lemma_set(self, text: str) -> Set[str]:
        return {lemma for _word, lemma in self.lemma_occurrences(text)}


_default: Optional[Lemmatizer] = None
_default_lock = threading.Lock()


def init_lemmatizer() -> Lemmatizer:
    """Load the Russian and English dictionaries once for the whole process."""
    global _default
    with _default_lock:
        if _default is None:
            _default = Lemmatizer(russian=RussianAnalyzer(), english=EnglishAnalyzer())
        return _default

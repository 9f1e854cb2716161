"""
In-memory document index used by demo search nodes
"""
import json
import math
import re
import threading
from typing import Any, Dict, Iterable, List, Mapping, Tuple

TOKEN_RE = re.compile(r"\w+", re.UNICODE)
MATCH_ALL = "*"


def tokenize(text: str) -> List[str]:
    """Lowercase word tokens of a string"""
    return TOKEN_RE.findall(text.lower())


class DocumentIndex:
    """
    Tiny scored text index.

    Documents are field maps; every string field is searchable. A document
    matches when it contains at least one query term, and scores
    sum(tf * idf) over the query terms. The query ``*`` matches everything
    with score 1.0.
    """

    def __init__(self, documents: Iterable[Mapping[str, Any]] = ()):
        self._lock = threading.RLock()
        self._documents: Dict[str, Dict[str, Any]] = {}
        self._terms: Dict[str, Dict[str, int]] = {}  # doc_id -> term frequencies
        self._next_id = 0
        for document in documents:
            self.add_document(document)

    def add_document(self, document: Mapping[str, Any]) -> str:
        """
        Add a document

        Args:
            document: Field map; an ``id`` field is used as the document id

        Returns:
            The document id
        """
        with self._lock:
            doc_id = str(document.get("id", self._next_id))
            self._next_id += 1

            frequencies: Dict[str, int] = {}
            for value in document.values():
                if isinstance(value, str):
                    for term in tokenize(value):
                        frequencies[term] = frequencies.get(term, 0) + 1

            self._documents[doc_id] = dict(document)
            self._terms[doc_id] = frequencies
            return doc_id

    def remove_document(self, doc_id: str) -> bool:
        with self._lock:
            self._terms.pop(doc_id, None)
            return self._documents.pop(doc_id, None) is not None

    def search(self, query: str, limit: int, offset: int = 0) -> Tuple[List[Dict[str, Any]], int]:
        """
        Score documents against a query

        Returns:
            (hits, total) where hits are ``{"score", "fields"}`` maps ordered
            by score descending and ``total`` counts every match
        """
        with self._lock:
            if query.strip() == MATCH_ALL:
                scored = [(1.0, doc_id) for doc_id in self._documents]
            else:
                scored = self._score(tokenize(query))

            scored.sort(key=lambda item: (-item[0], item[1]))
            page = scored[offset:offset + limit] if limit > 0 else []
            hits = [
                {"score": score, "fields": dict(self._documents[doc_id], id=doc_id)}
                for score, doc_id in page
            ]
        return hits, len(scored)

    def _score(self, terms: List[str]) -> List[Tuple[float, str]]:
        if not terms:
            return []
        count = len(self._documents)
        scored = []
        for doc_id, frequencies in self._terms.items():
            score = 0.0
            for term in terms:
                tf = frequencies.get(term, 0)
                if tf:
                    df = sum(1 for f in self._terms.values() if term in f)
                    score += tf * math.log(1.0 + count / df)
            if score > 0:
                scored.append((round(score, 6), doc_id))
        return scored

    @classmethod
    def load_from_file(cls, file_path: str) -> "DocumentIndex":
        """Build an index from a JSON file holding a list of documents"""
        with open(file_path, 'r') as f:
            documents = json.load(f)
        return cls(documents)

    def __len__(self) -> int:
        with self._lock:
            return len(self._documents)

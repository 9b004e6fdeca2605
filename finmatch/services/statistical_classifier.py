"""Statistical classifier: TF-IDF k-NN over the user's categorized history.

Descriptions are vectorized with character n-grams (robust to the noise
of bank labels: card numbers, store ids, truncation). A new transaction is
compared by cosine similarity to every known one; the top-K neighbours
vote for a category weighted by their similarity.

Confidence = (vote share of the winning category) x (best similarity), so
a single close neighbour among disagreeing ones stays a weak signal.
"""

import numpy as np
import structlog
from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.metrics.pairwise import cosine_similarity

from finmatch.config import settings
from finmatch.schemas.classification import Prediction
from finmatch.schemas.transaction import Transaction
from finmatch.services.text_similarity import normalize

logger = structlog.get_logger()


class TfidfNeighbourClassifier:
    """Fit on categorized transactions, then ``classify`` new ones."""

    def __init__(
        self,
        neighbors: int | None = None,
        similarity_floor: float | None = None,
        min_training_samples: int | None = None,
    ) -> None:
        self.neighbors = neighbors or settings.ml_neighbors
        self.similarity_floor = similarity_floor if similarity_floor is not None else settings.ml_similarity_floor
        self.min_training_samples = (
            min_training_samples if min_training_samples is not None else settings.ml_min_training_samples
        )
        self._vectorizer: TfidfVectorizer | None = None
        self._matrix = None
        self._labels: np.ndarray | None = None

    @property
    def is_trained(self) -> bool:
        return self._vectorizer is not None

    def fit(self, transactions: list[Transaction]) -> "TfidfNeighbourClassifier":
        """Train on transactions that already carry a category."""
        labelled = [
            t for t in transactions
            if t.existing_category_id is not None and normalize(t.display_description)
        ]
        if len(labelled) < self.min_training_samples:
            logger.info(
                "statistical_classifier_not_trained",
                samples=len(labelled),
                required=self.min_training_samples,
            )
            self._vectorizer = None
            self._matrix = None
            self._labels = None
            return self

        texts = [normalize(t.display_description) for t in labelled]
        self._vectorizer = TfidfVectorizer(analyzer="char_wb", ngram_range=(3, 5), min_df=1)
        self._matrix = self._vectorizer.fit_transform(texts)
        self._labels = np.array([t.existing_category_id for t in labelled])
        logger.info("statistical_classifier_trained", samples=len(labelled))
        return self

    def predict(self, description: str) -> Prediction | None:
        if not self.is_trained:
            return None
        text = normalize(description)
        if not text:
            return None

        vector = self._vectorizer.transform([text])
        similarities = cosine_similarity(vector, self._matrix)[0]

        k = min(self.neighbors, len(similarities))
        # stable sort keeps training order on ties
        top_indices = np.argsort(-similarities, kind="stable")[:k]
        best_sim = float(similarities[top_indices[0]])
        if best_sim < self.similarity_floor:
            return None

        category_scores: dict[int, float] = {}
        for idx in top_indices:
            sim = float(similarities[idx])
            if sim < self.similarity_floor:
                break
            cat_id = int(self._labels[idx])
            category_scores[cat_id] = category_scores.get(cat_id, 0.0) + sim

        best_cat_id = max(sorted(category_scores), key=category_scores.get)
        vote_share = category_scores[best_cat_id] / sum(category_scores.values())
        return Prediction(
            category_id=best_cat_id,
            confidence=round(vote_share * best_sim, 4),
            explanation=f"Nearest categorized transactions (similarity {best_sim:.2f})",
        )

    async def classify(self, transaction: Transaction) -> Prediction | None:
        return self.predict(transaction.display_description)

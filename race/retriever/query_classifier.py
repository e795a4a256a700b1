"""
Query Intent Classifier

Keyword heuristics that suggest how a question could be routed: which data
type it is about, which activity it mentions, and whether it asks for a
count, an average, or a comparison.

The output is advisory. Retrieval and context assembly are correct without
it; callers use it to pick a topK or add instructions to the context.
Covers English, Chinese, Japanese, Korean, Spanish, French, German, Italian
and Portuguese.
"""

import re
from dataclasses import dataclass
from typing import List, Optional

from ..common.schemas import DataType


def _keyword_pattern(latin: List[str], other: List[str] = ()) -> "re.Pattern":
    """Word-bounded alternation for Latin-script terms, plain alternation for CJK/Hangul."""
    parts = []
    if latin:
        parts.append(r"\b(?:" + "|".join(latin) + r")\b")
    parts.extend(other)
    return re.compile("|".join(parts), re.IGNORECASE)


@dataclass(frozen=True)
class QueryClassification:
    """Routing hints for a query"""
    suggested_data_type: Optional[DataType] = None
    suggested_activity: Optional[str] = None
    is_count_query: bool = False
    is_average_query: bool = False
    is_comparison_query: bool = False


class QueryIntentClassifier:
    """
    Classifies queries with case-insensitive keyword patterns.

    Each flag is evaluated independently, so a query can be both a count
    query and health-typed. Data type precedence: photo, health, location,
    voice. The suggested activity is the leftmost activity keyword.
    """

    COUNT_PATTERN = _keyword_pattern(
        [
            r"how many", r"number of", r"count", r"times", r"how often",
            r"cuántos", r"cuántas", r"número de", r"cantidad", r"veces",
            r"combien", r"nombre de", r"fois",
            r"wie viele", r"wieviel", r"wie oft", r"anzahl", r"mal",
            r"quanti", r"quante", r"numero di", r"volte",
            r"quantos", r"quantas", r"vezes",
        ],
        [
            r"几个", r"几次", r"多少个", r"多少次", r"多少张", r"有几", r"数量", r"统计",
            r"いくつ", r"何個", r"何回", r"何度", r"何枚", r"回数",
            r"몇\s?개", r"몇\s?번", r"몇\s?장", r"얼마나", r"횟수",
        ],
    )

    AVERAGE_PATTERN = _keyword_pattern(
        [
            r"average", r"mean", r"typical",
            r"promedio", r"media", r"moyenne", r"durchschnitt", r"mittel", r"medio", r"média",
        ],
        [r"平均", r"均值", r"평균"],
    )

    COMPARISON_PATTERN = _keyword_pattern(
        [
            r"more than", r"less than", r"compare", r"compared", r"versus", r"vs",
            r"más que", r"menos que", r"comparar",
            r"plus que", r"moins que", r"comparer",
            r"mehr als", r"weniger als", r"vergleichen",
            r"più di", r"meno di", r"confrontare",
            r"mais que",
        ],
        [
            r"比较", r"超过", r"少于", r"对比",
            r"より多い", r"より少ない", r"比較",
            r"보다\s?많", r"보다\s?적", r"비교",
        ],
    )

    # Checked in order; first hit wins
    DATA_TYPE_PATTERNS = [
        (DataType.PHOTO, _keyword_pattern(
            [
                r"photos?", r"pictures?", r"images?", r"took", r"captured", r"show me", r"visual",
                r"fotos?", r"fotografías?", r"imagen", r"bild(?:er)?", r"immagine", r"imagem",
            ],
            [r"照片", r"图片", r"相片", r"拍照", r"拍摄", r"写真", r"画像", r"フォト", r"사진", r"이미지"],
        )),
        (DataType.HEALTH, _keyword_pattern(
            [
                r"steps?", r"walk(?:s|ed|ing)?", r"heart", r"sleep(?:s|ing)?", r"slept",
                r"workouts?", r"exercis(?:e|es|ed|ing)", r"fitness", r"health", r"train(?:s|ed|ing)?",
                r"pasos", r"sueño", r"ejercicio", r"ritmo cardíaco", r"salud", r"entrenar",
                r"sommeil", r"exercice", r"rythme cardiaque", r"santé", r"entraîner",
                r"schritte", r"schlaf", r"übung", r"herzfrequenz", r"gesundheit", r"trainiert",
                r"passi", r"sonno", r"esercizio", r"frequenza cardiaca", r"salute", r"allenamento",
                r"passos", r"sono", r"exercício", r"frequência cardíaca", r"saúde",
            ],
            [
                r"步数", r"走路", r"心率", r"睡眠", r"运动", r"健身", r"锻炼",
                r"歩数", r"運動", r"心拍", r"ヘルス", r"トレーニング",
                r"걸음", r"수면", r"운동", r"심박", r"건강", r"트레이닝",
            ],
        )),
        (DataType.LOCATION, _keyword_pattern(
            [
                r"locations?", r"places?", r"where", r"visit(?:s|ed|ing)?", r"go", r"went", r"been to",
                r"lugar", r"ubicación", r"visita", r"dónde",
                r"lieu", r"endroit", r"visite", r"où",
                r"ort", r"standort", r"besuch", r"wo",
                r"luogo", r"posizione", r"dove",
                r"local", r"onde",
            ],
            [
                r"位置", r"地点", r"去了", r"到过", r"去过",
                r"場所", r"訪問", r"どこ",
                r"장소", r"위치", r"방문", r"어디",
            ],
        )),
        (DataType.VOICE, _keyword_pattern(
            [
                r"voice", r"notes?", r"said", r"recorded", r"recordings?", r"audio",
                r"voz", r"nota de voz", r"grabación",
                r"voix", r"note vocale", r"enregistrement",
                r"stimme", r"sprachnotiz", r"aufnahme",
                r"voce", r"nota vocale", r"registrazione",
                r"gravação", r"áudio",
            ],
            [
                r"语音", r"录音", r"音频", r"记录",
                r"音声", r"ボイス", r"録音", r"メモ",
                r"음성", r"녹음", r"메모", r"오디오",
            ],
        )),
    ]

    ACTIVITY_PATTERN = _keyword_pattern(
        [
            r"badminton", r"gym", r"work", r"restaurant", r"running", r"cycling", r"swimming", r"yoga",
            r"bádminton", r"gimnasio", r"correr", r"natación",
            r"natation", r"gymnastique", r"courir", r"nager",
            r"schwimmen", r"laufen",
            r"nuoto", r"correre", r"nuotando",
            r"corrida", r"natação",
        ],
        [
            r"羽毛球", r"健身房", r"跑步", r"游泳", r"瑜伽", r"骑行",
            r"バドミントン", r"ジム", r"ランニング", r"水泳", r"ヨガ",
            r"배드민턴", r"헬스장", r"달리기", r"수영", r"요가",
        ],
    )

    def classify(self, text: str) -> QueryClassification:
        """
        Classify a query.

        Args:
            text: Raw query text

        Returns:
            QueryClassification with independent flags and optional hints
        """
        if not text:
            return QueryClassification()

        return QueryClassification(
            suggested_data_type=self._detect_data_type(text),
            suggested_activity=self._detect_activity(text),
            is_count_query=bool(self.COUNT_PATTERN.search(text)),
            is_average_query=bool(self.AVERAGE_PATTERN.search(text)),
            is_comparison_query=bool(self.COMPARISON_PATTERN.search(text)),
        )

    def _detect_data_type(self, text: str) -> Optional[DataType]:
        for data_type, pattern in self.DATA_TYPE_PATTERNS:
            if pattern.search(text):
                return data_type
        return None

    def _detect_activity(self, text: str) -> Optional[str]:
        match = self.ACTIVITY_PATTERN.search(text)
        return match.group(0).lower() if match else None

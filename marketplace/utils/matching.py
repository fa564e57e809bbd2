# marketplace/utils/matching.py
import Levenshtein
from typing import Iterable

FUZZY_THRESHOLD = 0.8

# (輔助函式) 取得兩個字串的 Levenshtein 相似度 (0.0 ~ 1.0)
def _get_string_similarity(s1: str, s2: str) -> float:
    # 將 "編輯距離" 標準化為 "相似度"，1.0 表示完全相同
    if not s1 or not s2:
        return 0.0
    distance = Levenshtein.distance(s1.lower(), s2.lower())
    max_len = max(len(s1), len(s2))
    return 1.0 - (distance / max_len)

def matches_specialty(area_tag: str | None, specialties: Iterable[str]) -> bool:
    """
    案件的 area_tag 是否符合專業人士的任一專長：
    1. 忽略大小寫完全相同，或其中一方包含另一方
    2. Levenshtein 相似度 >= FUZZY_THRESHOLD (例如 "Plumber" / "Plumbers")
    """
    if not area_tag:
        return False
    tag = area_tag.strip().lower()

    for specialty in specialties:
        skill = specialty.strip().lower()
        if not skill:
            continue
        if skill == tag or skill in tag or tag in skill:
            return True
        if _get_string_similarity(skill, tag) >= FUZZY_THRESHOLD:
            return True
    return False

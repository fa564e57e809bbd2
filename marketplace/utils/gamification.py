# marketplace/utils/gamification.py

# (門檻 XP, 等級名稱)，依門檻遞增
LEVELS = [
    (0, "Bronze"),
    (1000, "Silver"),
    (2500, "Gold"),
    (5000, "Diamond"),
    (10000, "Legend"),
]

def compute_level_progress(xp: int) -> dict:
    """依經驗值計算目前等級、下一個等級與進度百分比 (0-100)"""
    xp = max(0, xp or 0)
    current_index = 0
    for index, (threshold, _) in enumerate(LEVELS[:-1]):
        if xp >= threshold:
            current_index = index

    next_threshold, next_name = LEVELS[current_index + 1]
    return {
        "xp": xp,
        "current_level": LEVELS[current_index][1],
        "next_level": next_name,
        "next_level_xp": next_threshold,
        "progress": min(100, int(xp / next_threshold * 100)),
    }

# marketplace/utils/geo.py
import math

EARTH_RADIUS_KM = 6371.0

def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """兩個經緯度之間的大圓距離 (公里)"""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    # 浮點誤差可能讓 a 略大於 1
    a = min(1.0, max(0.0, a))
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))

def within_radius(origin_lat: float, origin_lng: float, lat, lng, radius_km: float) -> bool:
    """座標是否落在半徑內 (含邊界)；沒有座標的項目一律排除"""
    if lat is None or lng is None:
        return False
    return haversine_km(origin_lat, origin_lng, lat, lng) <= radius_km

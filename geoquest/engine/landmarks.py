"""
GeoQuest — Kutaisi Landmark Registry
====================================

Static registry the game is seeded from at startup. Registry order matters:
the landmark matcher returns the first hit, so more specific names must come
before names that are substrings of them.
"""

from __future__ import annotations

from typing import Iterable, Optional

from geoquest.engine.models import Coordinates, Landmark, LandmarkCategory

MAP_CENTER = Coordinates(lat=42.2715, lng=42.706)

HOST_HOTEL_ID = "host_hotel"

_Q = LandmarkCategory.QUEST
_D = LandmarkCategory.DINING
_H = LandmarkCategory.HOTEL


# (lat, lng) positions are surveyed entrance/centre points
KUTAISI_LANDMARKS: tuple[Landmark, ...] = (
    Landmark(
        id          = HOST_HOTEL_ID,
        name        = "City Centre Apartment - Mari",
        category    = _H,
        position    = Coordinates(42.26957831490275, 42.7043414410688),
        reward_icon = "🏡",
        description = "A historic 19th-century home (est. 1875) with carved ceilings at Tsereteli 6.",
        riddle      = "I am a house built in 1875, standing near the Chain Bridge and Karvasla.",
        hints       = ("You are at Tsereteli Street N6.", "Next to Karvasla Shopping Centre."),
        facts       = ("Built in 1875, this building retains its unique atmosphere of the past.",),
    ),
    Landmark(
        id          = "colchis_fountain",
        name        = "Colchis Fountain",
        category    = _Q,
        position    = Coordinates(42.2714469795705, 42.705411642452056),
        reward_icon = "🦁",
        description = "The city symbol inaugurated in 2011, adorned with gilded Bronze Age animals.",
        riddle      = (
            "I am a golden army of 30 animals, but I do not bite. "
            "I carry the memory of King Aeetes and the Golden Fleece."
        ),
        hints       = (
            "Find the 'Tamada' (Toastmaster) statue at the very top.",
            "Look for the large circular fountain in the main square.",
        ),
        facts       = (
            "Designed by David Gogichaishvili, features 30 enlarged replicas of ancient Colchian gold.",
            "The 'Tamada' statue on top proves Georgia's wine culture dates back to the 7th century BC.",
        ),
    ),
    Landmark(
        id          = "meskhishvili_theatre",
        name        = "City Theatre (L. Meskhishvili)",
        category    = _Q,
        position    = Coordinates(42.27238980437894, 42.70592267924879),
        reward_icon = "🎭",
        description = "One of the oldest dramatic theatres in Georgia (1861).",
        riddle      = "I stand on the main square watching the Golden Fountain. My stage has seen drama since 1861.",
        hints       = (
            "It is the large building with columns right next to the Colchis Fountain.",
            "The first performance took place in 1861.",
        ),
        facts       = ("Founded in 1861, named after famous actor Lado Meskhishvili.",),
    ),
    Landmark(
        id          = "white_bridge",
        name        = "White Bridge",
        category    = _Q,
        position    = Coordinates(42.26885100021315, 42.7003048239845),
        reward_icon = "🎩",
        description = "A 19th-century symbol of Kutaisi over the Rioni River with glass floor panels.",
        riddle      = (
            "I have no walls, but I have windows to the river. "
            "A boy sits on my rail with two hats, waiting for Picasso."
        ),
        hints       = (
            "Find the bronze statue of a boy holding two hats.",
            "Look for the transparent glass panels on the floor to see the rushing river.",
        ),
        facts       = ("Built in the 19th century and remains a historic symbol of Kutaisi.",),
    ),
    Landmark(
        id          = "cable_car",
        name        = "Kutaisi Cable Car",
        category    = _Q,
        position    = Coordinates(42.26973915921473, 42.70077391049079),
        reward_icon = "🚠",
        description = "A vintage aerial tramway connecting the river bank to the amusement park on the hill.",
        riddle      = "I can fly without wings. Pay me 3 Lari and I will lift you from the White Bridge to the Ferris Wheel.",
        hints       = (
            "The lower station is in the park near the White Bridge.",
            "Look for the yellow gondolas crossing the river.",
        ),
        facts       = ("Leads to a recreation park with an old Ferris wheel.",),
    ),
    Landmark(
        id          = "art_gallery",
        name        = "Kakabadze Art Gallery",
        category    = _Q,
        position    = Coordinates(42.2708157611456, 42.70093795337343),
        reward_icon = "🎨",
        description = "A hidden gem housing original works by Pirosmani and Kakabadze.",
        riddle      = (
            "I hold the colors of Georgia. Inside me, Pirosmani paints his animals "
            "and Kakabadze paints his motherland."
        ),
        hints       = (
            "Located in the city center, often missed by tourists.",
            "Look for the sign of Davit Kakabadze.",
        ),
        facts       = ("Houses original paintings by Niko Pirosmani, Varla, and Kakabadze.",),
    ),
    Landmark(
        id          = "bagrati",
        name        = "Bagrati Cathedral",
        category    = _Q,
        position    = Coordinates(42.2773, 42.7043),
        reward_icon = "👑",
        description = "The symbol of united Georgia (1003 AD). A perfect spot for sunset views.",
        riddle      = (
            "I was born in 1003 AD and destroyed by gunpowder in 1692. "
            "I wear a green dome and watch the city from above."
        ),
        hints       = (
            "The cathedral is visible from almost anywhere in the city.",
            "Look for the large cross overlooking the valley.",
        ),
        facts       = (
            "Built in 1003, represents the unity of Georgia.",
            "The view from here is perfect for watching a stunning sunset.",
        ),
    ),
    Landmark(
        id          = "botanical_garden",
        name        = "Kutaisi Botanical Garden",
        category    = _Q,
        position    = Coordinates(42.28526523633019, 42.71354600971563),
        reward_icon = "🌳",
        description = "A peaceful retreat on the right bank of Rioni with a chapel inside a living tree.",
        riddle      = "I am a forest in the city. My most famous resident is a 400-year-old oak tree that prays to God.",
        hints       = (
            "Find the 400-year-old oak tree with a tiny chapel inside.",
            "It is located on the right bank of the Rioni River.",
        ),
        facts       = ("A tiny chapel is tucked inside the trunk of a 400-year-old oak tree.",),
    ),
    Landmark(
        id          = "history_museum",
        name        = "History Museum",
        category    = _Q,
        position    = Coordinates(42.2690870113976, 42.70403729364274),
        reward_icon = "🏺",
        description = "A treasure chest established in 1912, holding 200,000 artifacts.",
        riddle      = "I am a house of time. Inside me, you will find the weapons of kings and the bible of queens.",
        hints       = (
            "Look for the large historic building on Pushkin Street.",
            "The museum holds a handwritten bible from the 11th century.",
        ),
        facts       = ("Founded in 1912, holding over 190,000 items.",),
    ),
    Landmark(
        id          = "geguti_palace",
        name        = "Geguti Royal Palace",
        category    = _Q,
        position    = Coordinates(42.1633, 42.6869),
        reward_icon = "🏰",
        description = "The ruins of the medieval royal residence of Queen Tamar, 12km south of Kutaisi.",
        riddle      = "I am the house of a Queen, located 12km south. My roof is gone, but my walls remember the 12th century.",
        hints       = ("Located 12km south of Kutaisi.", "Look for the large brick ruins in the field."),
        facts       = ("Royal residence dating back to the 12th century (Golden Age).",),
    ),
    Landmark(
        id          = "motsameta",
        name        = "Motsameta Monastery",
        category    = _Q,
        position    = Coordinates(42.2825, 42.7592),
        reward_icon = "⛪",
        description = "The Place of Martyrs, perched on a cliff above the Red River.",
        riddle      = (
            "Two brothers lie here who refused to change their faith. "
            "Crawl under their bones three times, and your wish will be granted."
        ),
        hints       = (
            "There is a small tunnel under the ark where people crawl.",
            "Located just 3km from Kutaisi.",
        ),
        facts       = ("Home to relics of saints David and Constantine.",),
    ),
    Landmark(
        id          = "gelati",
        name        = "Gelati Monastery",
        category    = _Q,
        position    = Coordinates(42.2952, 42.7684),
        reward_icon = "📜",
        description = "A UNESCO site founded by David the Builder in 1106.",
        riddle      = (
            "I am the Golden Age of Georgia frozen in stone. A great king walks over my threshold. "
            "Look up at the Virgin Mary made of 2.5 million stones."
        ),
        hints       = (
            "Find the tombstone of David the Builder at the south gate entrance.",
            "Look for the famous mosaic of the Virgin Mary.",
        ),
        facts       = ("Founded in 1106 by King David IV, who is buried in the gateway.",),
    ),
    Landmark(
        id          = "prometheus_cave",
        name        = "Prometheus Cave",
        category    = _Q,
        position    = Coordinates(42.3768, 42.601),
        reward_icon = "🦇",
        description = "A 1.4km underground wonderland discovered in 1984.",
        riddle      = (
            "I was hidden in darkness until 1984. My rivers flow where the sun never shines, "
            "and my stone teeth grow from the ceiling."
        ),
        hints       = (
            "You can take a boat ride on the underground river.",
            "The cave temperature is a constant 14 degrees Celsius year-round.",
        ),
        facts       = ("Discovered in 1984 by local speleologists.",),
    ),
    Landmark(
        id          = "sataplia",
        name        = "Sataplia Nature Reserve",
        category    = _Q,
        position    = Coordinates(42.3129, 42.6744),
        reward_icon = "🦖",
        description = "A place where dinosaurs walked 120 million years ago.",
        riddle      = (
            "I am the place of honey. Walk on glass over the abyss and trace the steps "
            "of a beast from the Cretaceous period."
        ),
        hints       = (
            "Find the preserved footprint rock shelter.",
            "The name 'Sataplia' comes from 'Tapli' (Honey).",
        ),
        facts       = ("Preserves over 200 dinosaur footprints from the Cretaceous period.",),
    ),
    Landmark(
        id          = "kutaisi_airport",
        name        = "Kutaisi International Airport",
        category    = _Q,
        position    = Coordinates(42.18220167652388, 42.46546252398099),
        reward_icon = "✈️",
        description = "A modern gateway designed by UN Studio.",
        riddle      = "I am the red and white bridge to the sky. I never sleep.",
        hints       = (
            "Notice the control tower design, inspired by a beacon.",
            "It is located 14km west of Kutaisi.",
        ),
        facts       = ("Opened in 2012, designed by the Dutch architecture firm UN Studio.",),
    ),
    Landmark(
        id          = "palaty",
        name        = "Palaty",
        category    = _D,
        position    = Coordinates(42.269134571136476, 42.70212192583241),
        reward_icon = "🍽️",
        description = "Everything is tasty. Walk takes 4 minutes.",
        facts       = ("Famous for Khachapuri and cozy atmosphere.",),
        is_unlocked = True,
    ),
    Landmark(
        id          = "sisters",
        name        = "Sisters (Debi)",
        category    = _D,
        position    = Coordinates(42.272107310387554, 42.7042941104909),
        reward_icon = "🍷",
        description = "Cozy vintage atmosphere near the White Bridge.",
        facts       = ("Great for wine and local desserts.",),
        is_unlocked = True,
    ),
    Landmark(
        id          = "gallery_terrace",
        name        = "Gallery Terrace",
        category    = _D,
        position    = Coordinates(42.27089490550877, 42.701525310490965),
        reward_icon = "🌅",
        description = "Beautiful view on Bagrati Cathedral. 5 min walk.",
        facts       = ("Best sunset view in the city.",),
        is_unlocked = True,
    ),
)


def seed_landmarks() -> tuple[Landmark, ...]:
    """Registry snapshot for a new session."""
    return tuple(KUTAISI_LANDMARKS)


def find_landmark(landmarks: Iterable[Landmark], landmark_id: str) -> Optional[Landmark]:
    return next((l for l in landmarks if l.id == landmark_id), None)


def replace_landmark(landmarks: Iterable[Landmark], updated: Landmark) -> tuple[Landmark, ...]:
    return tuple(updated if l.id == updated.id else l for l in landmarks)


def quest_landmarks(landmarks: Iterable[Landmark]) -> list[Landmark]:
    return [l for l in landmarks if l.category == LandmarkCategory.QUEST]

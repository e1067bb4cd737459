"""Static gazetteer of popular destinations.

Keys are lower-case search terms matched as substrings of the user's text
before any network geocoding. Insertion order is the match order.
"""

from typing import Dict, Optional

from tripmap.domain.models.location import Location


def _place(name: str, lon: float, lat: float, zoom: int, description: str) -> Location:
    return Location(name=name, coordinates=(lon, lat), zoom=zoom, description=description)


GAZETTEER: Dict[str, Location] = {
    "paris": _place("Paris", 2.3522, 48.8566, 12,
                    "La capitale de la France, connue pour la Tour Eiffel et le Louvre."),
    "londres": _place("Londres", -0.1278, 51.5074, 12,
                      "La capitale du Royaume-Uni, célèbre pour Big Ben et Buckingham Palace."),
    "new york": _place("New York", -74.006, 40.7128, 12,
                       "La plus grande ville des États-Unis, connue pour Times Square et la Statue de la Liberté."),
    "tokyo": _place("Tokyo", 139.6917, 35.6895, 12,
                    "La capitale du Japon, mélange de culture traditionnelle et de technologie moderne."),
    "rome": _place("Rome", 12.4964, 41.9028, 12,
                   "La capitale de l'Italie, célèbre pour le Colisée et le Vatican."),
    "tunisie": _place("Tunisie", 9.5375, 33.8869, 7,
                      "Pays d'Afrique du Nord connu pour ses plages méditerranéennes et ses sites archéologiques."),
    "maroc": _place("Maroc", -7.0926, 31.7917, 6,
                    "Pays d'Afrique du Nord connu pour ses médinas, ses déserts et sa cuisine."),
    "barcelone": _place("Barcelone", 2.1734, 41.3851, 12,
                        "Ville espagnole connue pour son architecture unique et ses plages."),
    "berlin": _place("Berlin", 13.405, 52.52, 12,
                     "La capitale de l'Allemagne, connue pour son histoire et sa scène culturelle."),
    "amsterdam": _place("Amsterdam", 4.9041, 52.3676, 12,
                        "La capitale des Pays-Bas, connue pour ses canaux et ses musées."),
    "venise": _place("Venise", 12.3155, 45.4408, 13,
                     "Ville italienne construite sur des îles et connue pour ses canaux et son architecture."),
    "bangkok": _place("Bangkok", 100.5018, 13.7563, 12,
                      "La capitale de la Thaïlande, connue pour ses temples et sa street food."),
    "sydney": _place("Sydney", 151.2093, -33.8688, 12,
                     "La plus grande ville d'Australie, connue pour son opéra et son port."),
    "rio de janeiro": _place("Rio de Janeiro", -43.1729, -22.9068, 12,
                             "Ville brésilienne connue pour ses plages, le Christ Rédempteur et le carnaval."),
    "le caire": _place("Le Caire", 31.2357, 30.0444, 12,
                       "La capitale de l'Égypte, proche des pyramides de Gizeh."),
    "istanbul": _place("Istanbul", 28.9784, 41.0082, 12,
                       "Ville turque à cheval sur deux continents, connue pour ses mosquées et bazars."),
    "dubai": _place("Dubaï", 55.2708, 25.2048, 12,
                    "Ville des Émirats arabes unis connue pour ses gratte-ciels et son luxe."),
    "singapour": _place("Singapour", 103.8198, 1.3521, 12,
                        "Cité-État asiatique connue pour sa propreté, sa modernité et sa cuisine."),
    "hawaii": _place("Hawaii", -157.8583, 21.3069, 10,
                     "État insulaire américain connu pour ses plages et ses volcans."),
    "maldives": _place("Maldives", 73.2207, 3.2028, 9,
                       "Archipel de l'océan Indien connu pour ses plages et ses récifs coralliens."),
    "alpes": _place("Alpes", 8.2275, 46.8182, 8,
                    "Chaîne de montagnes européenne populaire pour les sports d'hiver."),
}

DEFAULT_LOCATION = GAZETTEER["paris"]


def lookup(text: str, gazetteer: Optional[Dict[str, Location]] = None) -> Optional[Location]:
    """Returns the first gazetteer entry whose key occurs in `text` (case-insensitive)."""
    lowercase_text = text.lower()
    for key, location in (gazetteer if gazetteer is not None else GAZETTEER).items():
        if key in lowercase_text:
            return location
    return None

from __future__ import annotations

from os.path import abspath, join

# [PATHS]
###############################################################################
ROOT_DIR = abspath(join(__file__, "../../../.."))
PROJECT_DIR = join(ROOT_DIR, "PHARMALINK")
SETTING_PATH = join(PROJECT_DIR, "setup", "settings")
RSC_PATH = join(PROJECT_DIR, "resources")
DATA_PATH = join(RSC_PATH, "database")
SOURCES_PATH = join(DATA_PATH, "sources")
EMA_SOURCES_PATH = join(SOURCES_PATH, "ema")
LOGS_PATH = join(RSC_PATH, "logs")
DATABASE_FILENAME = "sqlite.db"

###############################################################################
SERVER_CONFIGURATION_FILE = join(SETTING_PATH, "server_configurations.json")
FORMULARY_FILENAME = "formulary.json"
TRANSLATIONS_FILENAME = "ingredient_translations.json"
EMA_MEDICINES_FILENAME = "medicines_output_medicines_en.json"
EMA_SHORTAGES_FILENAME = "medicines_output_shortages_en.json"
EMA_DHPC_FILENAME = "medicines_output_dhpc_en.json"

# [ENDPOINTS]
###############################################################################
DRUGS_API_URL = "/drugs"
SOURCES_API_URL = "/sources"
OPENFDA_LABEL_URL = "https://api.fda.gov/drug/label.json"

# [KEY VALUE STORE]
###############################################################################
KEY_VALUE_TABLE = "KEY_VALUE_STORE"
EXPANSION_CACHE_KEY = "pharmalink-drug-expansion-cache"
EXPANSION_CACHE_VERSION = 1
EXPANSION_ID_PREFIX = "ext_"

# [SEARCH]
###############################################################################
DRUG_CLASS_SUFFIXES = (
    "statin",
    "pril",
    "sartan",
    "olol",
    "azole",
    "mycin",
    "cillin",
    "cycline",
    "prazole",
    "tidine",
    "dipine",
    "floxacin",
    "setron",
    "triptan",
    "gliptin",
    "glutide",
    "tinib",
    "mab",
    "umab",
    "zumab",
    "ximab",
    "mumab",
)

DRUG_ROUTES = {
    "oral",
    "iv",
    "im",
    "sc",
    "topical",
    "inhaled",
    "rectal",
    "ophthalmic",
    "otic",
    "nasal",
    "vaginal",
    "intrathecal",
    "epidural",
    "transdermal",
    "sublingual",
    "buccal",
}

# Hungarian product-form fragments mapped to the administration route
ROUTE_FORM_HINTS = (
    (("tabletta", "kapszula", "drazsé"), "oral"),
    (("injekció", "infúzió"), "iv"),
    (("kenőcs", "krém", "gél"), "topical"),
    (("inhaláció", "aeroszol"), "inhaled"),
    (("szemcsepp", "szemkenőcs"), "ophthalmic"),
    (("fülcsepp",), "otic"),
    (("orrcsepp", "orrspray"), "nasal"),
    (("kúp",), "rectal"),
    (("hüvely",), "vaginal"),
    (("tapasz",), "transdermal"),
    (("nyelv alá", "sublingual"), "sublingual"),
)

# [INGREDIENT PARSING]
###############################################################################
GENERIC_PLACEHOLDERS = (
    "diuretics",
    "diuretikumok",
    "vizelethajtók",
    "vizelethajtó",
    "combinations",
    "kombinációk",
    "kombinációi",
    "kombináció",
    "enzim-inhibitor",
    "enzyme inhibitor",
    "enzyme-inhibitor",
    "decarboxylase inhibitor",
    "dekarboxiláz inhibitor",
    "comt inhibítor",
    "comt inhibitor",
    "egyéb",
    "other",
    "others",
    "vakcinák",
    "vaccines",
    "antibiotics",
    "antibiotikumok",
    "antipsychotics",
    "antipszichotikumok",
    "analgesics",
    "fájdalomcsillapítók",
    "psycholeptics",
    "pszicholeptikumok",
    "corticosteroids",
    "kortikoszteroidok",
    "estrogen",
    "ösztrogén",
    "ösztrogének",
    "progestogen",
    "progesztogén",
    "progesztogének",
    "calcium channel blockers",
    "kalciumcsatorna-blokkolók",
)

PHARMACEUTICAL_FORM_WORDS = {
    "tabletta",
    "filmtabletta",
    "kapszula",
    "injekció",
    "oldat",
    "tablet",
    "capsule",
    "injection",
    "solution",
    "cream",
    "gel",
    "por",
    "powder",
    "spray",
    "inhaler",
    "patch",
    "tapasz",
    "csepp",
    "drops",
    "syrup",
    "szirup",
    "suspension",
    "szuszpenzió",
}

# form and release descriptors that end a brand name
BASE_NAME_FORM_SUFFIXES = (
    "gyomornedv-ellenálló",
    "módosított hatóanyagleadású",
    "nyújtott hatású",
    "bélben oldódó",
    "kemény kapszula",
    "lágy kapszula",
    "drazsé",
    "drazse",
    "infúzió",
    "granulátum",
    "kenőcs",
    "krém",
    "gél",
    "aeroszol",
    "inhaláció",
    "cseppek",
    "szemcsepp",
    "fülcsepp",
    "orrcsepp",
    "kúp",
    *sorted(PHARMACEUTICAL_FORM_WORDS),
)
RELEASE_MODIFIERS = ("retard", "depot", "xl", "sr", "cr", "er", "mr", "pr")

# [CLINICAL WARNINGS]
###############################################################################
WARNING_SEVERITY_ORDER = {"critical": 0, "high": 1, "moderate": 2, "info": 3}
WARNING_SUMMARY_LENGTH = 150
MAX_SAFETY_COMMUNICATIONS = 10

__all__ = [
    "DRUG_CLASS_SUFFIXES",
    "GENERIC_PLACEHOLDERS",
    "PHARMACEUTICAL_FORM_WORDS",
    "SERVER_CONFIGURATION_FILE",
]

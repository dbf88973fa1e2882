import os
import yaml

ROOT_PATH = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
CONFIG_FILE_PATH = os.environ.get("GOYNA_CONFIG", os.path.join(ROOT_PATH, "env.yaml"))

if os.path.exists(CONFIG_FILE_PATH):
    with open(CONFIG_FILE_PATH, "r") as r_file:
        data = yaml.safe_load(r_file) or dict()
else:
    data = dict()


class ApplicationConfig:
    BRAND_NAME = data.get("BRAND_NAME", "G Te Goyna")
    BRAND_SUBTITLE = data.get("BRAND_SUBTITLE", "গ তে গয়না")
    # Prefix for persisted keys and the export filename
    BRAND_KEY = data.get("BRAND_KEY", "g-te-goyna")
    BRAND_FILE_PREFIX = data.get("BRAND_FILE_PREFIX", "G-Te-Goyna")

    STORAGE_PATH = data.get("STORAGE_PATH", "")  # empty -> resolved by storage.get_storage_path()
    LOG_LEVEL = data.get("LOG_LEVEL", "INFO")

    # Access Gate
    VERIFY_DELAY_SECONDS = float(data.get("VERIFY_DELAY_SECONDS", 0.8))

    # Export
    EXPORT_DELAY_SECONDS = float(data.get("EXPORT_DELAY_SECONDS", 0.5))
    EXPORT_SCALE = int(data.get("EXPORT_SCALE", 2))

    CURRENCY_SYMBOL = data.get("CURRENCY_SYMBOL", "Tk ")
    TERMS = data.get("TERMS", [
        "The jewellery contains 3 years colour guarantee.",
        "Please Check infront of delivery man and then pay the rest amount.",
        "Complaints will not be accepted once the delivery personnel have left.",
    ])
    FOOTER_LINES = data.get("FOOTER_LINES", [
        "Thank you for your purchase! We appreciate your support.",
        "G Te Goyna | গ তে গয়না",
    ])

    @classmethod
    def attempts_key(cls) -> str:
        return f"{cls.BRAND_KEY}-attempts"

    @classmethod
    def lockout_key(cls) -> str:
        return f"{cls.BRAND_KEY}-lockout"

    @classmethod
    def session_auth_key(cls) -> str:
        return f"{cls.BRAND_KEY}-auth"

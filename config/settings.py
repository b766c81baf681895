import os

# --- Configurações ---
def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default

BACKEND = os.getenv("BACKEND", "postgrest").lower()  # 'postgrest' | 'sql'
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_KEY = (
    os.getenv("SUPABASE_SERVICE_ROLE_KEY")
    or os.getenv("SUPABASE_KEY")
    or ""
)
DB_HOST = os.getenv("POSTGRES_HOST", "localhost")
DB_PORT = _int_env("POSTGRES_PORT", 5432)
DB_NAME = os.getenv("POSTGRES_DB", "postgres")
DB_USER = os.getenv("POSTGRES_USER", "postgres")
DB_PASSWORD = os.getenv("POSTGRES_PASSWORD", "")
DB_URL = os.getenv(
    "DB_URL",
    f"postgresql+psycopg2://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
)
PAGE_SIZE = _int_env("PAGE_SIZE", 1000)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
# snapshot em `relatorio_metricas` (exige DB_URL acessível mesmo no modo postgrest)
PERSIST_METRICS = os.getenv("PERSIST_METRICS", "true").lower() in ("1", "true", "yes")

# Relatório mensal
REPORT_TIMEZONE = os.getenv("REPORT_TIMEZONE", "America/Sao_Paulo")
REPORT_DAY = _int_env("REPORT_DAY", 1)
REPORT_TIME = os.getenv("REPORT_TIME", "02:00")

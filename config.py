import logging
import os

import requests
from dotenv import load_dotenv

from errors import ConfigError

# Load environment variables from .env
load_dotenv()

logger = logging.getLogger(__name__)

SERVICE_NAME = os.getenv('SERVICE_NAME', 'turnos-service')
PROFILE = os.getenv('PROFILE', 'default')


def fetch_remote_source(config_server_url, service_name=SERVICE_NAME, profile=PROFILE, timeout=5):
    """
    Read the service configuration from Spring Cloud Config.

    Returns the first property source as a dict. Raises ConfigError when the
    server cannot be reached or holds no source for this service.
    """
    config_url = f"{config_server_url}/{service_name}/{profile}"
    try:
        response = requests.get(config_url, timeout=timeout)
        response.raise_for_status()
        config_data = response.json()
    except (requests.RequestException, ValueError) as e:
        raise ConfigError(f"Unable to fetch configuration from Config Server: {e}") from e

    # First source wins
    property_sources = config_data.get('propertySources', [])
    if not property_sources:
        raise ConfigError("Unable to fetch configuration from Config Server")
    return property_sources[0]['source']


def build_database_uri(host, port, user, password, name):
    # The password segment is omitted when empty
    if password:
        return f"mysql+pymysql://{user}:{password}@{host}:{port}/{name}"
    return f"mysql+pymysql://{user}@{host}:{port}/{name}"


def load_config(environ=None):
    """Assemble the Flask config mapping from the environment and, if set, the Config Server."""
    env = os.environ if environ is None else environ

    db_host = env.get('DB_HOST', 'localhost')
    db_port = env.get('DB_PORT', '3307')
    db_user = env.get('DB_USER', 'root')
    db_password = env.get('DB_PASS', '')
    db_name = env.get('DB_NAME', 'clinica')

    config_server_url = env.get('CONFIG_SERVER_URL')
    if config_server_url:
        source = fetch_remote_source(
            config_server_url,
            service_name=env.get('SERVICE_NAME', SERVICE_NAME),
            profile=env.get('PROFILE', PROFILE),
        )
        db_host = source.get('spring.datasource.url', db_host)
        db_port = source.get('spring.datasource.port', db_port)
        db_user = source.get('spring.datasource.username', db_user)
        db_password = source.get('spring.datasource.password', db_password)
        db_name = source.get('spring.datasource.dbname', db_name)
        logger.info("Configuration loaded from Config Server %s", config_server_url)

    database_uri = env.get('DATABASE_URL') or build_database_uri(
        db_host, db_port, db_user, db_password, db_name
    )

    return {
        'SQLALCHEMY_DATABASE_URI': database_uri,
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SQLALCHEMY_ENGINE_OPTIONS': {'pool_pre_ping': True},
        'LOG_LEVEL': env.get('LOG_LEVEL', 'INFO'),
        'CLINIC_TIMEZONE': env.get('CLINIC_TIMEZONE', 'America/Argentina/Buenos_Aires'),
        'BOOKING_HORIZON_DAYS': int(env.get('BOOKING_HORIZON_DAYS', '20')),
        'BUSINESS_HOUR_START': int(env.get('BUSINESS_HOUR_START', '9')),
        'BUSINESS_HOUR_END': int(env.get('BUSINESS_HOUR_END', '18')),
    }

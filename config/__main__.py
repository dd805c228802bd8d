"""Command line interface for testing configuration loading"""
import sys

from . import load_settings_conf, SettingsError

SECRET_KEYS = {'jwt_secret', 'vnpay_hash_secret'}


def main():
    """Display loaded configuration"""
    try:
        settings = load_settings_conf(sys.argv[1] if len(sys.argv) > 1 else None)
    except SettingsError as e:
        print(e)
        sys.exit(1)

    print("\nSettings Configuration:")
    print("-" * 50)
    for key, value in settings.items():
        print(f"{key}: {'********' if key in SECRET_KEYS else value}")


if __name__ == "__main__":
    main()

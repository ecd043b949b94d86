"""API Key Vault Meta information.
   API Key Vault issues bearer credentials and keeps third-party
   provider API keys encrypted at rest, per user.
"""
__title__ = 'apikey_vault'
__description__ = (
   'Per-user encrypted vault for third-party provider API keys '
   'with bearer credential issuance.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2026 API Key Vault contributors'
__author__ = 'API Key Vault contributors'
__author_email__ = 'maintainers@apikey-vault.dev'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/apikey-vault/apikey-vault'

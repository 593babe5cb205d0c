"""Test-suite for CloudExpense.

The settings singleton is created when :mod:`CloudExpense.settings.lib` is first imported,
so the config directory is redirected to a scratch location before any test module imports
the package.
"""
import os
import tempfile

os.environ.setdefault('QT_QPA_PLATFORM', 'offscreen')
os.environ.setdefault('CLOUDEXPENSE_CONFIG_DIR', tempfile.mkdtemp(prefix='cloudexpense_tests_'))

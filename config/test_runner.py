from django.conf import settings
from django.core.cache import cache
from django.db import connections
from django.test.runner import DiscoverRunner

IN_MEMORY_SQLITE = {
    "ENGINE": "django.db.backends.sqlite3",
    "NAME": ":memory:",
    "ATOMIC_REQUESTS": True,
    "CONN_MAX_AGE": 0,
    "OPTIONS": {},
}


class ProjectDiscoverRunner(DiscoverRunner):
    """
    `manage.py test` runner: discovers under ``apps`` by default, runs on an
    in-memory SQLite database and starts from an empty cache so cached
    permission and feature sets never leak between runs.
    """

    default_labels = ["apps"]

    def build_suite(self, test_labels=None, **kwargs):
        labels = list(test_labels or [])
        if not labels or labels == ["."]:
            labels = self.default_labels
        return super().build_suite(labels, **kwargs)

    def setup_test_environment(self, **kwargs):
        super().setup_test_environment(**kwargs)
        cache.clear()

    def setup_databases(self, **kwargs):
        if getattr(settings, "USE_SQLITE_FOR_TESTS", True):
            for alias in connections:
                connections[alias].close()
                connections[alias].settings_dict.update(IN_MEMORY_SQLITE)
        return super().setup_databases(**kwargs)

    def load_tests_for_label(self, label, discover_kwargs=None):
        # tests.factories is imported from the project root
        discover_kwargs = dict(discover_kwargs or {})
        discover_kwargs["top_level_dir"] = str(settings.BASE_DIR)
        return super().load_tests_for_label(label, discover_kwargs)

from typing import Any, MutableMapping

from jinja2 import BaseLoader, ChoiceLoader, Environment, PackageLoader, PrefixLoader, Template


class TemplateLoader(PrefixLoader):
    """Language-prefixed loader over ``<package>/templates/<lang>`` directories.

    Extra loaders registered for a language take precedence over the packaged
    templates, so applications can override individual prompts.
    """

    def __init__(self, package_name: str, languages: tuple[str, ...] = ('en',), default_lang: str = 'en'):
        self.default_lang = default_lang
        self.loader_map: dict[str, list[BaseLoader]] = {
            lang: [PackageLoader(package_name, package_path=f"templates/{lang}")]
            for lang in languages
        }
        super().__init__(self._choice_loaders())

    def _choice_loaders(self) -> dict[str, BaseLoader]:
        return {lang: ChoiceLoader(loaders) for lang, loaders in self.loader_map.items()}

    def add_loaders(self, lang: str | None = None, *loaders: BaseLoader):
        lang = lang or self.default_lang
        self.loader_map[lang] = list(loaders) + self.loader_map.get(lang, [])
        self.mapping = self._choice_loaders()


class TemplateEnvironment(Environment):
    def __init__(self, package_name: str = 'agentflow', default_lang: str | None = None, **options: Any):
        self.loader = TemplateLoader(package_name, default_lang=default_lang or 'en')
        options.setdefault('trim_blocks', True)
        options.setdefault('lstrip_blocks', True)
        super().__init__(loader=self.loader, **options)

    def add_loaders(self, *loaders: BaseLoader, lang: str | None = None):
        self.loader.add_loaders(lang, *loaders)

    def load_template(self, name: str, lang: str | None = None, globals: MutableMapping[str, Any] | None = None) -> Template:
        """Load *name*, preferring *lang*, then the default language, then English."""
        candidates: list[str] = []
        for candidate in (lang, self.loader.default_lang, 'en', *self.loader.loader_map.keys()):
            if candidate and candidate in self.loader.loader_map and candidate not in candidates:
                candidates.append(candidate)
        return self.select_template(names=[f"{c}/{name}" for c in candidates], globals=globals)

import importlib
import pkgutil

from flask import Blueprint


def _iter_segment_modules():
    import settlement.segments as segments_pkg
    for m in sorted(pkgutil.iter_modules(segments_pkg.__path__), key=lambda m: m.name):
        if m.ispkg:
            continue
        yield f"{segments_pkg.__name__}.{m.name}"


def register_all_segment_blueprints(app):
    registered = []
    for mod_name in _iter_segment_modules():
        module = importlib.import_module(mod_name)
        for obj in module.__dict__.values():
            if isinstance(obj, Blueprint):
                if obj.name in app.blueprints:
                    continue
                app.register_blueprint(obj)
                registered.append(obj.name)
    app.logger.info("Registered segment blueprints: %s", registered)
    return registered

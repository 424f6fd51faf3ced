from celery import Celery


def make_celery(app):
    celery = Celery(app.import_name)
    celery.conf.update(app.config["CELERY_CONFIG"])
    celery.conf.update(
        task_ignore_result=False,
        task_track_started=True,
        accept_content=['json'],
        task_serializer='json',
        result_serializer='json',
        result_expires=3600,
        imports=['restohub.tasks']
    )

    class ContextTask(celery.Task):
        def __call__(self, *args, **kwargs):
            with app.app_context():
                return self.run(*args, **kwargs)

    celery.Task = ContextTask
    celery.set_default()
    return celery

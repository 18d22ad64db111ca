from .one_link import LinkSubmission, OneLink, SurveyPrefillKey  # noqa: F401

selectors = {
    # Login
    "sign_in_links": [
        'a[data-tracking-control-name="guest_homepage-basic_nav-header-signin"]',
        'a[href*="/login"]',
        ".nav__button-secondary",
        'a:has-text("Sign in")',
        '[data-test-id="sign-in-button"]',
        'button:has-text("Sign in")',
    ],
    "username_input": "#username",
    "password_input": "#password",
    "login_submit": [
        'button[type="submit"]',
        'button[data-id="sign-in-form__submit-btn"]',
        ".btn__primary--large",
        'button:has-text("Sign in")',
        '[data-test-id="sign-in-form-submit-button"]',
    ],
    # Checked before the success indicators; any hit means the login failed.
    "login_failure_indicators": [
        ".form__input--error",
        ".alert",
        ".error-message",
        'div:has-text("Please enter a valid email address")',
        'div:has-text("The password you provided must have")',
        'div:has-text("Hmm, we don\'t recognize that email")',
        ".challenge-page",
        "#captcha-internal",
    ],
    "login_success_indicators": [
        ".global-nav",
        '[data-test-id="nav-top-bar"]',
        ".feed-container",
        ".global-nav__me",
    ],

    # My Network
    "my_network_links": [
        'a[data-test-global-nav-link="mynetwork"]',
        '.global-nav__primary-link[href*="mynetwork"]',
        'nav a:has-text("My Network")',
        'a[href*="/mynetwork"]',
    ],
    "see_all_buttons": [
        'button[data-view-name="cohort-section-see-all"]',
        'a[data-view-name="cohort-section-see-all"]',
        'button[aria-label*="Show all suggestions"]',
        'button[aria-label*="Show all"]',
        'button[aria-label*="See all"]',
        'button:has-text("Show all")',
        'button:has-text("See all")',
        'a:has-text("Show all")',
        'a:has-text("See all")',
        ".cohort-section__see-all",
        ".mn-pymk-list__footer button",
        '[data-control-name*="see_all"]',
    ],
    "see_all_texts": ["see all", "show all", "see more"],

    # Suggestions dialog
    "list_dialogs": [
        '[data-testid="dialog"]',
        '[role="dialog"]',
        ".artdeco-modal",
        ".modal-dialog",
        "[data-test-modal]",
    ],
    "person_card": '[role="listitem"]',
    "mutual_connection_text": [
        'p:has-text("mutual connection")',
        'p:has-text("other mutual")',
        'span:has-text("mutual connection")',
        '.artdeco-entity-lockup__subtitle:has-text("mutual")',
        '.artdeco-entity-lockup__caption:has-text("mutual")',
        '[data-test-id*="mutual"]',
    ],
    "connect_buttons": [
        'button:has-text("Connect")',
        'button[aria-label*="Connect"]',
        'button[data-test-id*="connect"]',
        '.artdeco-button:has-text("Connect")',
        '[data-control-name*="connect"]',
    ],
    # Shown by some invitations ("Add a note?")
    "send_invitation_buttons": [
        'button:has-text("Send now")',
        'button[aria-label*="Send now"]',
        'button:has-text("Send without a note")',
        'button:has-text("Send")',
        'button[aria-label*="Send"]',
    ],
}
